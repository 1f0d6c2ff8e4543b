"""
Lucid — History Aggregator

Owns the two bounded histories of the audit pipeline:

- drift series: one DriftPoint per scheduler tick, oldest first, the most
  recent `drift_window` samples kept
- audit log: one AuditRecord per completed analysis, newest first, the
  most recent `audit_log_size` records kept

Also holds the single-slot "last analysis" pointer. Completions are
stamped with the sequence number of the request that produced them; a
completion older than the one already applied still lands in the audit
log but does not move the pointer backwards.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import TYPE_CHECKING, Callable

import structlog

from lucid.primitives.common import new_id, utc_now
from lucid.systems.audit.types import (
    AuditRecord,
    AuditResult,
    BiasLevel,
    DriftPoint,
    LogicConsistency,
    RiskCategory,
    RiskFindings,
    Severity,
)

if TYPE_CHECKING:
    from lucid.systems.audit.types import DecisionTriple

logger = structlog.get_logger()

ANOMALY_CONFIDENCE_THRESHOLD = 0.7

_LOGIC_BY_SEVERITY = {
    Severity.HIGH: LogicConsistency.RISK,
    Severity.MEDIUM: LogicConsistency.WARNING,
}


def derive_risk_findings(result: AuditResult, confidence: float) -> RiskFindings:
    """Summarise an audit result's risk indicators for the audit log."""
    bias = result.indicator(RiskCategory.BIAS)
    drift = result.indicator(RiskCategory.DRIFT)
    logic = result.indicator(RiskCategory.LOGIC)

    bias_level = BiasLevel(bias.severity.value.capitalize()) if bias else BiasLevel.NONE
    drift_detected = confidence < ANOMALY_CONFIDENCE_THRESHOLD or (
        drift is not None and drift.severity == Severity.HIGH
    )
    logic_consistency = (
        _LOGIC_BY_SEVERITY.get(logic.severity, LogicConsistency.STABLE)
        if logic
        else LogicConsistency.STABLE
    )

    return RiskFindings(
        bias_level=bias_level,
        drift_detected=drift_detected,
        logic_consistency=logic_consistency,
    )


def _iso(ts: datetime) -> str:
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class HistoryAggregator:
    """Single-writer owner of the drift series and the audit log."""

    def __init__(
        self,
        drift_window: int = 20,
        audit_log_size: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._drift: deque[DriftPoint] = deque(maxlen=drift_window)
        self._audits: deque[AuditRecord] = deque(maxlen=audit_log_size)
        self._clock = clock
        self._last_analysis: AuditResult | None = None
        self._last_applied_seq = -1
        self._logger = logger.bind(system="audit.history")

    # ── Drift ─────────────────────────────────────────────────────

    def append_drift(self, confidence: float) -> DriftPoint:
        point = DriftPoint(
            timestamp=self._clock().astimezone().strftime("%H:%M:%S"),
            confidence=confidence,
            error_rate=1 - confidence,
            anomaly_detected=confidence < ANOMALY_CONFIDENCE_THRESHOLD,
        )
        self._drift.append(point)
        return point

    @property
    def drift_history(self) -> list[DriftPoint]:
        """Oldest first."""
        return list(self._drift)

    # ── Audit log ─────────────────────────────────────────────────

    def record(
        self,
        result: AuditResult,
        triple: DecisionTriple,
        seq: int | None = None,
    ) -> AuditRecord:
        """
        Fold a completed analysis into the audit log.

        seq is the issue order of the analysis request. None means the
        result was produced outside the scheduler and always wins.
        """
        record = AuditRecord(
            audit_id=f"audit-{new_id()}",
            timestamp=_iso(self._clock()),
            input_snapshot=triple.input,
            output_snapshot=triple.output,
            confidence_score=triple.confidence,
            result=result,
            risk_findings=derive_risk_findings(result, triple.confidence),
        )
        self._audits.appendleft(record)

        if seq is None or seq > self._last_applied_seq:
            self._last_analysis = result
            if seq is not None:
                self._last_applied_seq = seq
        else:
            self._logger.debug(
                "stale_completion_ignored",
                seq=seq,
                last_applied_seq=self._last_applied_seq,
            )

        self._logger.debug(
            "audit_recorded",
            audit_id=record.audit_id,
            status=result.status,
            trust_score=result.trust_score,
            log_size=len(self._audits),
        )
        return record

    @property
    def audit_log(self) -> list[AuditRecord]:
        """Newest first."""
        return list(self._audits)

    @property
    def last_analysis(self) -> AuditResult | None:
        return self._last_analysis
