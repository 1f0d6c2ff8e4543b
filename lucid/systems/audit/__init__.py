"""
Lucid — Audit Pipeline

The memoized, fallback-capable analysis call that turns a decision triple
into a structured AuditResult, and the tick-driven scheduler that decides
when to analyze, perturbs simulated decisions, and folds results into
bounded histories.
"""

from lucid.systems.audit.engine import AnalysisEngine
from lucid.systems.audit.errors import (
    InvalidUserInput,
    LocalParseError,
    LucidError,
    RemoteError,
    RemoteQuotaError,
    RemoteTransportError,
    SchemaValidationError,
)
from lucid.systems.audit.heuristics import heuristic_audit
from lucid.systems.audit.history import HistoryAggregator, derive_risk_findings
from lucid.systems.audit.scheduler import AuditScheduler, TickReport
from lucid.systems.audit.service import AuditService
from lucid.systems.audit.state import DecisionStateStore, parse_edit
from lucid.systems.audit.types import (
    AuditPayload,
    AuditRecord,
    AuditResult,
    BiasLevel,
    DecisionTriple,
    DriftPoint,
    Explanations,
    Impact,
    InfluencingFactor,
    LogicConsistency,
    RiskCategory,
    RiskFindings,
    RiskIndicator,
    SchedulerMode,
    Severity,
    VerbosityLevel,
)

__all__ = [
    # Service
    "AuditService",
    # Components
    "AnalysisEngine",
    "AuditScheduler",
    "DecisionStateStore",
    "HistoryAggregator",
    "TickReport",
    "derive_risk_findings",
    "heuristic_audit",
    "parse_edit",
    # Errors
    "InvalidUserInput",
    "LocalParseError",
    "LucidError",
    "RemoteError",
    "RemoteQuotaError",
    "RemoteTransportError",
    "SchemaValidationError",
    # Types
    "AuditPayload",
    "AuditRecord",
    "AuditResult",
    "BiasLevel",
    "DecisionTriple",
    "DriftPoint",
    "Explanations",
    "Impact",
    "InfluencingFactor",
    "LogicConsistency",
    "RiskCategory",
    "RiskFindings",
    "RiskIndicator",
    "SchedulerMode",
    "Severity",
    "VerbosityLevel",
]
