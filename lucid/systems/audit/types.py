"""
Lucid — Audit Type Definitions

Data types for the analysis and audit pipeline: the decision triple under
audit, the structured result returned by the explainability engine, drift
samples, and audit records.

Wire names are camelCase (see LucidBaseModel); Python attributes are snake_case.
"""

from __future__ import annotations

import enum
from typing import Any, Literal

from pydantic import Field

from lucid.primitives.common import LucidBaseModel

# ─── Enums ────────────────────────────────────────────────────────


class SchedulerMode(enum.StrEnum):
    MANUAL = "manual"  # No timer; user drives analyses
    LIVE = "live"  # Analyze every tick, state owned by the user
    SIMULATION = "simulation"  # Random-walk the state, analyze on cadence


class Impact(enum.StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class RiskCategory(enum.StrEnum):
    BIAS = "Bias"
    CONFIDENCE = "Confidence"
    LOGIC = "Logic"
    DRIFT = "Drift"


class Severity(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BiasLevel(enum.StrEnum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class LogicConsistency(enum.StrEnum):
    STABLE = "Stable"
    WARNING = "Warning"
    RISK = "Risk"


class VerbosityLevel(enum.StrEnum):
    SIMPLE = "simple"
    DETAILED = "detailed"
    TECHNICAL = "technical"


# ─── Decision ────────────────────────────────────────────────────


class DecisionTriple(LucidBaseModel):
    """One model decision under audit. Passed around by value."""

    input: dict[str, Any] = Field(default_factory=dict)
    output: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)


# ─── Audit result ────────────────────────────────────────────────


class Explanations(LucidBaseModel):
    simple: str
    detailed: str
    technical: str


class InfluencingFactor(LucidBaseModel):
    factor: str
    impact: Impact
    weight: float
    explanation: str


class RiskIndicator(LucidBaseModel):
    category: RiskCategory
    severity: Severity
    finding: str


class AuditPayload(LucidBaseModel):
    """The shape the remote explainability service must return."""

    explanations: Explanations
    influencing_factors: list[InfluencingFactor]
    risk_indicators: list[RiskIndicator]
    trust_score: float = Field(ge=0.0, le=100.0)


class AuditResult(AuditPayload):
    """A payload tagged with where it came from. Immutable once created."""

    status: Literal["live", "fallback"]

    def explanation(self, level: VerbosityLevel | str = VerbosityLevel.SIMPLE) -> str:
        return getattr(self.explanations, VerbosityLevel(level).value)

    def indicator(self, category: RiskCategory) -> RiskIndicator | None:
        """First risk indicator of the given category, if any."""
        for risk in self.risk_indicators:
            if risk.category == category:
                return risk
        return None


# ─── History ─────────────────────────────────────────────────────


class DriftPoint(LucidBaseModel):
    timestamp: str  # display time, HH:MM:SS
    confidence: float
    error_rate: float
    anomaly_detected: bool


class RiskFindings(LucidBaseModel):
    bias_level: BiasLevel
    drift_detected: bool
    logic_consistency: LogicConsistency


class AuditRecord(LucidBaseModel):
    audit_id: str
    timestamp: str  # ISO-8601
    input_snapshot: dict[str, Any]
    output_snapshot: dict[str, Any]
    confidence_score: float
    result: AuditResult
    risk_findings: RiskFindings
