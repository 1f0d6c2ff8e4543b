"""
Lucid — Audit Scheduler

Timer-driven controller for the audit pipeline. Modes:

- manual:      no timer; analyses happen only on explicit request
- live:        every tick analyzes the current decision as the user left it
- simulation:  every tick random-walks the decision, then analyzes on a
               3-tick cadence or whenever confidence drops below 0.68

Every fired tick appends exactly one drift sample with that tick's
effective confidence, after the mutation/analysis decision. In simulation
that is the clamped walk value before the state rounds it to 2 decimals.

Usage:
    scheduler = AuditScheduler(state=store, history=history, issue_analysis=fn)
    await scheduler.start()
    await scheduler.configure(mode=SchedulerMode.SIMULATION, interval_seconds=5)
    ...
    await scheduler.stop()

Design notes:
- Reconfiguration is an explicit restart: stop the timer (pending tick
  is cancelled, not deferred), apply the change, start a fresh timer.
- Analyses run as background tasks on a snapshot captured at tick time,
  so a slow remote call never holds up the drift sample or the next tick.
- Mode changes do not cancel in-flight analyses; they only stop future ticks.
- The tick counter only ever increments.
"""

from __future__ import annotations

import asyncio
import math
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Coroutine

import structlog

from lucid.systems.audit.types import DecisionTriple, DriftPoint, SchedulerMode

if TYPE_CHECKING:
    from lucid.systems.audit.history import HistoryAggregator
    from lucid.systems.audit.state import DecisionStateStore

logger = structlog.get_logger("lucid.scheduler")

# Called synchronously at tick time; returns the analysis coroutine to run.
IssueAnalysisFn = Callable[[DecisionTriple], Coroutine[Any, Any, Any]]

# ─── Simulation constants ─────────────────────────────────────────

CONFIDENCE_STEP = 0.02
CONFIDENCE_MIN = 0.4
CONFIDENCE_MAX = 1.0
INCOME_STEP = 1000
INCOME_MIN = 20000
LOAN_AMOUNT_STEP = 500
LOAN_AMOUNT_MIN = 5000
ANALYSIS_CADENCE_TICKS = 3
EARLY_WARNING_CONFIDENCE = 0.68


@dataclass(frozen=True)
class TickReport:
    tick: int
    mode: SchedulerMode
    confidence: float
    analysis_triggered: bool
    drift_point: DriftPoint


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _walk(rng: random.Random, step: float) -> float:
    """Uniform shift in [-step, +step)."""
    return (rng.random() - 0.5) * 2 * step


class AuditScheduler:
    """
    Drives the tick loop for live and simulation modes.

    Parameters
    ----------
    state:
        DecisionStateStore the simulator perturbs and ticks snapshot.
    history:
        HistoryAggregator receiving one drift sample per tick.
    issue_analysis:
        Turns a snapshot into the coroutine that analyzes and records it.
    rng:
        Random source for the simulation walk. Seed it for reproducibility.
    """

    def __init__(
        self,
        state: DecisionStateStore,
        history: HistoryAggregator,
        issue_analysis: IssueAnalysisFn,
        mode: SchedulerMode | str = SchedulerMode.MANUAL,
        interval_seconds: float = 30,
        rng: random.Random | None = None,
    ) -> None:
        _check_interval(interval_seconds)
        self._state = state
        self._history = history
        self._issue_analysis = issue_analysis
        self._mode = SchedulerMode(mode)
        self._interval = interval_seconds
        self._rng = rng or random.Random()
        self._tick_count = 0
        self._started = False
        self._timer: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[Any]] = set()
        # Serialises start/stop/configure so the timer always matches the mode
        self._lifecycle_lock = asyncio.Lock()
        self._error_count = 0

    # ── Properties ────────────────────────────────────────────────

    @property
    def mode(self) -> SchedulerMode:
        return self._mode

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "started": self._started,
            "mode": self._mode.value,
            "interval_seconds": self._interval,
            "tick_count": self._tick_count,
            "timer_running": self.timer_running,
            "inflight_analyses": len(self._inflight),
            "error_count": self._error_count,
        }

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the timer for the current mode (no-op timer in manual)."""
        async with self._lifecycle_lock:
            self._started = True
            self._start_timer()
        logger.info(
            "scheduler_started",
            mode=self._mode.value,
            interval_seconds=self._interval,
        )

    async def stop(self) -> None:
        """Cancel the timer. In-flight analyses keep running."""
        async with self._lifecycle_lock:
            self._started = False
            await self._stop_timer()
        logger.info("scheduler_stopped", tick_count=self._tick_count)

    async def configure(
        self,
        mode: SchedulerMode | str | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        """
        Explicit restart: stop current timer, mutate config, start new timer.

        Takes effect from the next scheduled tick.
        """
        async with self._lifecycle_lock:
            next_mode = self._mode if mode is None else SchedulerMode(mode)
            next_interval = self._interval if interval_seconds is None else interval_seconds
            _check_interval(next_interval)

            await self._stop_timer()
            self._mode = next_mode
            self._interval = next_interval
            if self._started:
                self._start_timer()

        logger.info(
            "scheduler_reconfigured",
            mode=self._mode.value,
            interval_seconds=self._interval,
            timer_running=self.timer_running,
        )

    async def drain(self) -> None:
        """Wait for every in-flight analysis to complete."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def cancel_inflight(self) -> None:
        """Cancel outstanding analyses. Used on service shutdown only."""
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ── Tick ──────────────────────────────────────────────────────

    def tick(self) -> TickReport:
        """
        Run one timer event.

        Must be called from within the event loop, since analyses are
        launched as tasks.
        """
        self._tick_count += 1
        triggered = False

        if self._mode == SchedulerMode.SIMULATION:
            confidence = self._perturb()
            triggered = (
                self._tick_count % ANALYSIS_CADENCE_TICKS == 0
                or confidence < EARLY_WARNING_CONFIDENCE
            )
        else:
            confidence = self._state.confidence
            triggered = self._mode == SchedulerMode.LIVE

        if triggered:
            self._launch(self._state.snapshot())

        point = self._history.append_drift(confidence)
        logger.debug(
            "scheduler_tick",
            tick=self._tick_count,
            mode=self._mode.value,
            confidence=confidence,
            analysis_triggered=triggered,
        )
        return TickReport(
            tick=self._tick_count,
            mode=self._mode,
            confidence=confidence,
            analysis_triggered=triggered,
            drift_point=point,
        )

    def _perturb(self) -> float:
        """
        Bounded random walk of the decision state.

        The state stores confidence rounded to 2 decimals; the returned value
        is the unrounded clamped one, which gates analysis and feeds the
        drift sample.
        """
        current = self._state.input
        income_shift = _walk(self._rng, INCOME_STEP)
        loan_shift = _walk(self._rng, LOAN_AMOUNT_STEP)
        confidence_shift = _walk(self._rng, CONFIDENCE_STEP)

        if _is_number(current.get("income")):
            current["income"] = max(INCOME_MIN, math.floor(current["income"] + income_shift))
        if _is_number(current.get("loanAmount")):
            current["loanAmount"] = max(
                LOAN_AMOUNT_MIN, math.floor(current["loanAmount"] + loan_shift)
            )

        confidence = min(
            CONFIDENCE_MAX,
            max(CONFIDENCE_MIN, self._state.confidence + confidence_shift),
        )
        self._state.update(input_data=current, confidence=round(confidence, 2))
        return confidence

    def _launch(self, triple: DecisionTriple) -> None:
        task = asyncio.create_task(
            self._issue_analysis(triple),
            name=f"audit:analysis:{self._tick_count}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._on_analysis_done)

    def _on_analysis_done(self, task: asyncio.Task[Any]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._error_count += 1
            logger.warning(
                "scheduler_analysis_error",
                task=task.get_name(),
                error=f"{type(exc).__name__}: {exc}",
            )

    # ── Timer internals ───────────────────────────────────────────

    def _start_timer(self) -> None:
        # Never leave a previous timer alive behind the new one
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        if self._mode == SchedulerMode.MANUAL:
            return
        self._timer = asyncio.create_task(
            self._run_timer(self._interval), name="audit:scheduler"
        )

    async def _stop_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass

    async def _run_timer(self, interval_seconds: float) -> None:
        # First tick fires one full interval after start
        while True:
            try:
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                logger.debug("scheduler_timer_cancelled", tick_count=self._tick_count)
                raise

            try:
                self.tick()
            except Exception as exc:
                self._error_count += 1
                logger.warning(
                    "scheduler_tick_error",
                    tick=self._tick_count,
                    error=str(exc),
                )


def _check_interval(interval_seconds: float) -> None:
    if isinstance(interval_seconds, bool) or not isinstance(interval_seconds, (int, float)):
        raise ValueError(f"simulation interval must be a number, got {interval_seconds!r}")
    if not interval_seconds > 0:
        raise ValueError(f"simulation interval must be positive, got {interval_seconds}")
