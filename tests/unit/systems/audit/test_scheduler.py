"""
Tests for AuditScheduler — tick semantics and the timer lifecycle.

Ticks are driven directly via tick() except in TestTimer, which uses
sub-second intervals against the real event loop.
"""

from __future__ import annotations

import asyncio
import random

import pytest

from lucid.systems.audit.history import HistoryAggregator
from lucid.systems.audit.scheduler import AuditScheduler
from lucid.systems.audit.state import DecisionStateStore
from lucid.systems.audit.types import DecisionTriple, SchedulerMode


class _FixedRandom(random.Random):
    """Always returns the same draw; 0.5 means no shift, 0.0 the largest drop."""

    def __init__(self, value: float) -> None:
        super().__init__()
        self._value = value

    def random(self) -> float:
        return self._value


class _AnalysisRecorder:
    def __init__(self) -> None:
        self.snapshots: list[DecisionTriple] = []

    def __call__(self, triple: DecisionTriple):
        self.snapshots.append(triple)
        return self._noop()

    async def _noop(self) -> None:
        return None


def _make_scheduler(
    mode: SchedulerMode = SchedulerMode.SIMULATION,
    confidence: float = 0.87,
    rng: random.Random | None = None,
    interval: float = 30,
    income: int = 75000,
    loan_amount: int = 25000,
) -> tuple[AuditScheduler, DecisionStateStore, HistoryAggregator, _AnalysisRecorder]:
    state = DecisionStateStore(
        input_data={"age": 28, "income": income, "loanAmount": loan_amount},
        output_data={"decision": "Approved"},
        confidence=confidence,
    )
    history = HistoryAggregator()
    recorder = _AnalysisRecorder()
    scheduler = AuditScheduler(
        state=state,
        history=history,
        issue_analysis=recorder,
        mode=mode,
        interval_seconds=interval,
        rng=rng or _FixedRandom(0.5),
    )
    return scheduler, state, history, recorder


# ─── Simulation ───────────────────────────────────────────────────


class TestSimulationTick:
    @pytest.mark.asyncio
    async def test_gating_cadence_every_third_tick(self):
        scheduler, _, _, recorder = _make_scheduler()

        triggered = [scheduler.tick().analysis_triggered for _ in range(7)]
        await scheduler.drain()

        assert triggered == [False, False, True, False, False, True, False]
        assert len(recorder.snapshots) == 2

    @pytest.mark.asyncio
    async def test_early_warning_overrides_cadence(self):
        scheduler, state, _, recorder = _make_scheduler(confidence=0.69, rng=_FixedRandom(0.0))

        report = scheduler.tick()
        await scheduler.drain()

        assert report.tick == 1
        assert report.confidence == pytest.approx(0.67)
        assert report.analysis_triggered is True
        assert recorder.snapshots[0].confidence == 0.67
        assert state.confidence == 0.67

    @pytest.mark.asyncio
    async def test_early_warning_uses_unrounded_confidence(self):
        # 0.69 - 0.0105 = 0.6795: stored as 0.68, but below the warning line
        scheduler, state, history, recorder = _make_scheduler(
            confidence=0.69, rng=_FixedRandom(0.2375),
        )

        report = scheduler.tick()
        await scheduler.drain()

        assert state.confidence == 0.68
        assert report.analysis_triggered is True
        assert len(recorder.snapshots) == 1
        assert recorder.snapshots[0].confidence == 0.68
        assert history.drift_history[-1].confidence == pytest.approx(0.6795)

    @pytest.mark.asyncio
    async def test_walk_step_and_floor(self):
        scheduler, state, _, _ = _make_scheduler(rng=_FixedRandom(0.0))
        scheduler.tick()

        assert state.input["income"] == 74000
        assert state.input["loanAmount"] == 24500
        assert state.input["age"] == 28
        assert state.confidence == 0.85

    @pytest.mark.asyncio
    async def test_clamps_at_lower_bounds(self):
        scheduler, state, _, _ = _make_scheduler(
            confidence=0.41, rng=_FixedRandom(0.0), income=20300, loan_amount=5100,
        )
        for _ in range(5):
            scheduler.tick()
        await scheduler.drain()

        assert state.confidence == 0.4
        assert state.input["income"] == 20000
        assert state.input["loanAmount"] == 5000

    @pytest.mark.asyncio
    async def test_clamps_at_upper_confidence(self):
        scheduler, state, _, _ = _make_scheduler(confidence=0.99, rng=_FixedRandom(0.999999))
        for _ in range(3):
            scheduler.tick()
        await scheduler.drain()
        assert state.confidence == 1.0

    @pytest.mark.asyncio
    async def test_random_walk_stays_in_bounds(self):
        scheduler, state, history, _ = _make_scheduler(
            confidence=0.45, rng=random.Random(20240611), income=21000, loan_amount=5600,
        )
        for _ in range(400):
            report = scheduler.tick()
            assert 0.4 <= state.confidence <= 1.0
            assert state.confidence == round(state.confidence, 2)
            assert state.input["income"] >= 20000
            assert state.input["loanAmount"] >= 5000
            assert report.drift_point.confidence == pytest.approx(state.confidence, abs=0.005)
        await scheduler.drain()
        assert len(history.drift_history) == 20

    @pytest.mark.asyncio
    async def test_seeded_walk_is_reproducible(self):
        first, state_a, _, _ = _make_scheduler(rng=random.Random(7))
        second, state_b, _, _ = _make_scheduler(rng=random.Random(7))
        for _ in range(25):
            first.tick()
            second.tick()
        await first.drain()
        await second.drain()
        assert state_a.snapshot() == state_b.snapshot()

    @pytest.mark.asyncio
    async def test_missing_numeric_fields_are_left_alone(self):
        state = DecisionStateStore({"text": "hello", "income": "n/a"}, {}, 0.9)
        scheduler = AuditScheduler(
            state=state,
            history=HistoryAggregator(),
            issue_analysis=_AnalysisRecorder(),
            mode=SchedulerMode.SIMULATION,
            rng=_FixedRandom(0.0),
        )
        scheduler.tick()
        assert state.input == {"text": "hello", "income": "n/a"}
        assert state.confidence == 0.88


# ─── Live / manual ────────────────────────────────────────────────


class TestLiveTick:
    @pytest.mark.asyncio
    async def test_live_analyzes_every_tick_without_perturbing(self):
        scheduler, state, history, recorder = _make_scheduler(
            mode=SchedulerMode.LIVE, rng=_FixedRandom(0.0),
        )
        before = state.snapshot()

        reports = [scheduler.tick() for _ in range(4)]
        await scheduler.drain()

        assert all(r.analysis_triggered for r in reports)
        assert len(recorder.snapshots) == 4
        assert state.snapshot() == before
        assert [p.confidence for p in history.drift_history] == [0.87] * 4

    @pytest.mark.asyncio
    async def test_snapshot_is_captured_at_tick_time(self):
        scheduler, state, _, recorder = _make_scheduler(mode=SchedulerMode.LIVE)
        scheduler.tick()
        state.update(input_data={"income": 1}, confidence=0.1)
        await scheduler.drain()
        assert recorder.snapshots[0].input["income"] == 75000
        assert recorder.snapshots[0].confidence == 0.87

    @pytest.mark.asyncio
    async def test_each_tick_appends_exactly_one_drift_point(self):
        scheduler, _, history, _ = _make_scheduler(mode=SchedulerMode.MANUAL)
        scheduler.tick()
        scheduler.tick()
        assert len(history.drift_history) == 2
        assert scheduler.tick_count == 2


# ─── Timer lifecycle ──────────────────────────────────────────────


class TestTimer:
    @pytest.mark.asyncio
    async def test_manual_mode_runs_no_timer(self):
        scheduler, _, _, _ = _make_scheduler(mode=SchedulerMode.MANUAL, interval=0.01)
        await scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.timer_running is False
        assert scheduler.tick_count == 0
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_timer_fires_ticks(self):
        scheduler, _, history, recorder = _make_scheduler(mode=SchedulerMode.LIVE, interval=0.01)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()
        await scheduler.drain()

        assert scheduler.tick_count >= 2
        assert len(recorder.snapshots) == scheduler.tick_count
        assert len(history.drift_history) == min(20, scheduler.tick_count)

    @pytest.mark.asyncio
    async def test_switching_to_manual_cancels_pending_tick(self):
        scheduler, _, _, _ = _make_scheduler(mode=SchedulerMode.LIVE, interval=0.05)
        await scheduler.start()
        assert scheduler.timer_running is True

        await scheduler.configure(mode=SchedulerMode.MANUAL)
        await asyncio.sleep(0.15)

        assert scheduler.timer_running is False
        assert scheduler.tick_count == 0
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_overlapping_reconfigures_leave_manual_idle(self):
        scheduler, _, _, _ = _make_scheduler(mode=SchedulerMode.LIVE, interval=0.05)
        await scheduler.start()

        await asyncio.gather(
            scheduler.configure(mode=SchedulerMode.MANUAL),
            scheduler.configure(interval_seconds=0.05),
        )
        ticks_at_switch = scheduler.tick_count
        await asyncio.sleep(0.3)

        assert scheduler.mode == SchedulerMode.MANUAL
        assert scheduler.timer_running is False
        assert scheduler.tick_count == ticks_at_switch
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_restart_replaces_running_timer(self):
        scheduler, _, _, _ = _make_scheduler(mode=SchedulerMode.LIVE, interval=0.05)
        await scheduler.start()
        first_timer = scheduler._timer

        await scheduler.start()
        await asyncio.sleep(0.01)

        assert scheduler._timer is not first_timer
        assert first_timer.cancelled()
        assert scheduler.timer_running is True
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_interval_change_restarts_timer(self):
        scheduler, _, _, _ = _make_scheduler(mode=SchedulerMode.LIVE, interval=0.1)
        await scheduler.start()
        await asyncio.sleep(0.06)
        # Pending tick due at 0.1s is dropped; the new timer starts from zero
        await scheduler.configure(interval_seconds=0.2)
        await asyncio.sleep(0.1)
        assert scheduler.tick_count == 0
        await asyncio.sleep(0.15)
        assert scheduler.tick_count == 1
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_tick_count_survives_reconfiguration(self):
        scheduler, _, _, _ = _make_scheduler(mode=SchedulerMode.LIVE)
        scheduler.tick()
        scheduler.tick()
        await scheduler.configure(mode=SchedulerMode.SIMULATION, interval_seconds=5)
        scheduler.tick()
        await scheduler.drain()
        assert scheduler.tick_count == 3

    @pytest.mark.asyncio
    async def test_configure_before_start_does_not_start_timer(self):
        scheduler, _, _, _ = _make_scheduler(mode=SchedulerMode.MANUAL)
        await scheduler.configure(mode=SchedulerMode.LIVE)
        assert scheduler.timer_running is False

    @pytest.mark.parametrize("interval", [0, -1])
    def test_rejects_non_positive_interval(self, interval):
        with pytest.raises(ValueError):
            _make_scheduler(interval=interval)

    @pytest.mark.asyncio
    async def test_mode_change_does_not_cancel_inflight_analysis(self):
        gate = asyncio.Event()
        completed: list[DecisionTriple] = []

        async def _slow(triple: DecisionTriple) -> None:
            await gate.wait()
            completed.append(triple)

        state = DecisionStateStore({"income": 50000}, {}, 0.9)
        scheduler = AuditScheduler(
            state=state,
            history=HistoryAggregator(),
            issue_analysis=_slow,
            mode=SchedulerMode.LIVE,
        )
        await scheduler.start()
        scheduler.tick()
        await scheduler.configure(mode=SchedulerMode.MANUAL)
        gate.set()
        await scheduler.drain()

        assert len(completed) == 1
        await scheduler.stop()
