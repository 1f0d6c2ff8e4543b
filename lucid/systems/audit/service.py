"""
Lucid — Audit Service

Wires the four components of the analysis and audit pipeline:

    Scheduler tick ─▶ Decision State (mutate) ─▶ Analysis Engine(snapshot)
                  └─▶ History Aggregator (drift sample, audit record)

and exposes the operations the presentation layer needs: manual edits,
on-demand analysis, reconfiguration, and read-only views of the state.
"""

from __future__ import annotations

import itertools
import random
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Coroutine

import structlog

from lucid.primitives.common import utc_now
from lucid.systems.audit.engine import AnalysisEngine
from lucid.systems.audit.errors import InvalidUserInput
from lucid.systems.audit.history import HistoryAggregator
from lucid.systems.audit.scheduler import AuditScheduler
from lucid.systems.audit.state import DecisionStateStore
from lucid.systems.audit.types import (
    AuditRecord,
    AuditResult,
    DecisionTriple,
    DriftPoint,
    SchedulerMode,
)

if TYPE_CHECKING:
    from lucid.clients.analysis_cache import AnalysisCache
    from lucid.clients.llm import ExplainabilityProvider
    from lucid.config import LucidConfig

logger = structlog.get_logger()


class AuditService:
    """
    Owns the decision state, the engine, the histories and the scheduler.

    All mutation happens on the event loop thread; the histories follow a
    single-writer discipline (scheduler tick handler and explicit user
    actions only).
    """

    def __init__(
        self,
        config: LucidConfig,
        provider: ExplainabilityProvider | None,
        cache: AnalysisCache | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._provider = provider
        self._logger = logger.bind(system="audit.service")
        self._seq = itertools.count()
        self._initialized = False

        self._state = DecisionStateStore(
            input_data=config.decision.input,
            output_data=config.decision.output,
            confidence=config.decision.confidence,
        )
        self._engine = AnalysisEngine(
            provider=provider,
            cache=cache,
            dedupe_inflight=config.analysis.dedupe_inflight,
        )
        self._history = HistoryAggregator(
            drift_window=config.history.drift_window,
            audit_log_size=config.history.audit_log_size,
            clock=clock,
        )
        if rng is None:
            rng = random.Random(config.scheduler.seed)
        self._scheduler = AuditScheduler(
            state=self._state,
            history=self._history,
            issue_analysis=self._issue_analysis,
            mode=config.scheduler.mode,
            interval_seconds=config.scheduler.simulation_interval,
            rng=rng,
        )

    # ── Lifecycle ─────────────────────────────────────────────────

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self._scheduler.start()
        self._initialized = True
        self._logger.info(
            "audit_service_initialized",
            mode=self._scheduler.mode.value,
            provider=getattr(self._provider, "model", None),
        )

    async def shutdown(self) -> None:
        await self._scheduler.stop()
        await self._scheduler.cancel_inflight()
        if self._provider is not None:
            await self._provider.close()
        self._initialized = False
        self._logger.info("audit_service_shutdown")

    # ── Components ────────────────────────────────────────────────

    @property
    def engine(self) -> AnalysisEngine:
        return self._engine

    @property
    def history(self) -> HistoryAggregator:
        return self._history

    @property
    def scheduler(self) -> AuditScheduler:
        return self._scheduler

    @property
    def state(self) -> DecisionStateStore:
        return self._state

    # ── Operations ────────────────────────────────────────────────

    async def run_analysis(self) -> AuditRecord:
        """Analyze the current decision now and record the result."""
        return await self._issue_analysis(self._state.snapshot())

    def record_audit(
        self,
        result: AuditResult,
        input_data: dict[str, Any],
        output_data: dict[str, Any],
        confidence: float,
    ) -> AuditRecord:
        """Record an analysis that completed outside the pipeline."""
        triple = DecisionTriple(input=input_data, output=output_data, confidence=confidence)
        return self._history.record(result, triple)

    def edit_decision(
        self, input_text: str, output_text: str, confidence: Any,
    ) -> tuple[bool, str | None]:
        """
        Apply a manual editor submission.

        Returns:
            (accepted, error). A malformed part keeps the prior decision and
            error says which part was rejected.
        """
        try:
            self._state.apply_edit(input_text, output_text, confidence)
        except InvalidUserInput as exc:
            self._logger.warning("decision_edit_rejected", error=str(exc))
            return False, str(exc)
        return True, None

    async def configure(
        self,
        mode: SchedulerMode | str | None = None,
        simulation_interval: int | None = None,
    ) -> None:
        await self._scheduler.configure(mode=mode, interval_seconds=simulation_interval)

    # ── Views ─────────────────────────────────────────────────────

    @property
    def decision(self) -> DecisionTriple:
        return self._state.snapshot()

    @property
    def last_analysis(self) -> AuditResult | None:
        return self._history.last_analysis

    @property
    def drift_history(self) -> list[DriftPoint]:
        return self._history.drift_history

    @property
    def audit_log(self) -> list[AuditRecord]:
        return self._history.audit_log

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "scheduler": self._scheduler.stats,
            "engine": self._engine.stats,
            "drift_points": len(self._history.drift_history),
            "audit_records": len(self._history.audit_log),
        }

    # ── Internals ─────────────────────────────────────────────────

    def _issue_analysis(
        self, triple: DecisionTriple,
    ) -> Coroutine[Any, Any, AuditRecord]:
        # Sequence is taken at issue time, not at completion
        seq = next(self._seq)
        return self._analyze_and_record(triple, seq)

    async def _analyze_and_record(self, triple: DecisionTriple, seq: int) -> AuditRecord:
        result = await self._engine.analyze(triple.input, triple.output, triple.confidence)
        return self._history.record(result, triple, seq=seq)
