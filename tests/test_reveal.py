# tests/test_reveal.py
"""Reasoning reveal: pacing, the ready/final-step race, single finalize, preemption."""
from __future__ import annotations

from typing import List, Tuple

import pytest

from core.entities import ReasoningStep
from core.reveal import (
    CancelTimers,
    Cancelled,
    ResponseRevealController,
    RevealPhase,
    RevealState,
    RevealTimings,
    ScheduleSafetyTimeout,
    ScheduleStep,
    Start,
    StepTimerFired,
    transition,
)
from util.errors import RevealInvariantError

TIMINGS = RevealTimings(
    first_step_ms=300,
    step_ms=700,
    fast_step_ms=150,
    final_step_ms=250,
    complete_ms=500,
    safety_timeout_ms=30_000,
)


def _steps(n: int) -> List[ReasoningStep]:
    return [ReasoningStep("•", f"step {i}") for i in range(n)]


class Recorder:
    def __init__(self, scheduler) -> None:
        self.scheduler = scheduler
        self.renders: List[Tuple[int, RevealPhase, int, bool]] = []
        self.finalized: List[Tuple[str, object, bool]] = []
        self.cancelled: List[str] = []

    def on_render(self, phase, session):
        self.renders.append((self.scheduler.now, phase, session.visible_count, session.response_ready))

    def on_finalize(self, session_id, result, forced):
        self.finalized.append((session_id, result, forced))

    def on_cancel(self, session_id):
        self.cancelled.append(session_id)

    def reveal_times(self) -> List[Tuple[int, int]]:
        """(time, visible_count) each time a new step became visible."""
        out, last = [], 0
        for t, _, visible, _ in self.renders:
            if visible > last:
                out.append((t, visible))
                last = visible
        return out


def _controller(scheduler, strict=True):
    rec = Recorder(scheduler)
    ctl = ResponseRevealController(
        scheduler,
        TIMINGS,
        on_render=rec.on_render,
        on_finalize=rec.on_finalize,
        on_cancel=rec.on_cancel,
        strict=strict,
    )
    return ctl, rec


# ── Pure transition function ──


class TestTransition:
    def test_start_schedules_first_step_and_safety_timeout(self):
        step = transition(RevealState(), Start("s1", tuple(_steps(3))), TIMINGS)
        assert step.state.phase == RevealPhase.REVEALING
        assert ScheduleSafetyTimeout("s1", 30_000) in step.effects
        assert ScheduleStep("s1", 300) in step.effects

    def test_start_requires_steps(self):
        with pytest.raises(ValueError):
            transition(RevealState(), Start("s1", ()), TIMINGS)

    def test_single_step_list_waits_for_answer(self):
        step = transition(RevealState(), Start("s1", tuple(_steps(1))), TIMINGS)
        assert step.state.phase == RevealPhase.WAITING_FOR_FINAL_ANSWER
        assert not any(isinstance(e, ScheduleStep) for e in step.effects)

    def test_stale_timer_is_ignored(self):
        state = transition(RevealState(), Start("s1", tuple(_steps(3))), TIMINGS).state
        step = transition(state, StepTimerFired("old"), TIMINGS)
        assert step.state == state
        assert step.effects == ()

    def test_restart_cancels_active_session(self):
        state = transition(RevealState(), Start("s1", tuple(_steps(3))), TIMINGS).state
        step = transition(state, Start("s2", tuple(_steps(2))), TIMINGS)
        assert step.effects[:2] == (CancelTimers("s1"), Cancelled("s1"))
        assert step.state.session.session_id == "s2"
        assert step.state.session.visible_count == 0

    def test_idle_ignores_events(self):
        step = transition(RevealState(), StepTimerFired("s1"), TIMINGS)
        assert step.state.phase == RevealPhase.IDLE
        assert step.effects == ()


# ── Controller timing scenarios ──


class TestRevealPacing:
    def test_normal_pace_then_wait_for_answer(self, scheduler):
        ctl, rec = _controller(scheduler)
        ctl.start(_steps(4))
        scheduler.advance(10_000)
        assert rec.reveal_times() == [(300, 1), (1000, 2), (1700, 3)]
        assert ctl.state.phase == RevealPhase.WAITING_FOR_FINAL_ANSWER
        assert rec.finalized == []

    def test_answer_mid_reveal_fast_forwards(self, scheduler):
        """4 steps; answer lands right after step index 1 shows."""
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(4))
        scheduler.advance(1000)
        assert ctl.state.session.visible_count == 2
        ctl.response_ready(sid, "answer")
        scheduler.advance(5000)
        assert rec.reveal_times() == [(300, 1), (1000, 2), (1150, 3), (1400, 4)]
        assert rec.finalized == [(sid, "answer", False)]
        assert ctl.state.phase == RevealPhase.COMPLETE

    def test_complete_fires_500ms_after_final_step(self, scheduler):
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(3))
        scheduler.advance(1000)  # both non-final steps shown
        ctl.response_ready(sid, "late")
        scheduler.advance(249)
        assert ctl.state.session.visible_count == 2
        scheduler.advance(1)
        assert ctl.state.session.visible_count == 3
        assert ctl.state.phase == RevealPhase.SHOWING_FINAL_STEP
        scheduler.advance(499)
        assert rec.finalized == []
        scheduler.advance(1)
        assert rec.finalized == [(sid, "late", False)]

    def test_early_answer_keeps_opening_pace(self, scheduler):
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(3))
        ctl.response_ready(sid, "fast")
        scheduler.advance(5000)
        assert rec.reveal_times() == [(300, 1), (450, 2), (700, 3)]
        assert rec.finalized == [(sid, "fast", False)]

    def test_stream_started_does_not_release_final_step(self, scheduler):
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(3))
        scheduler.advance(1000)
        ctl.stream_started(sid)
        scheduler.advance(5000)
        assert ctl.state.session.streaming is True
        assert ctl.state.session.visible_count == 2
        assert ctl.state.phase == RevealPhase.WAITING_FOR_FINAL_ANSWER


class TestSafetyTimeout:
    def test_never_ready_forces_single_finalize(self, scheduler):
        """3 steps, no answer: forced finalize at 30s, exactly once."""
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(3))
        scheduler.advance(29_999)
        assert rec.finalized == []
        scheduler.advance(1)
        assert rec.finalized == [(sid, None, True)]
        assert ctl.state.phase == RevealPhase.COMPLETE
        assert ctl.state.session.visible_count == 2
        scheduler.advance(60_000)
        assert len(rec.finalized) == 1
        assert scheduler.pending() == []

    def test_answer_after_timeout_is_ignored(self, scheduler):
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(3))
        scheduler.advance(30_000)
        ctl.response_ready(sid, "too late")
        scheduler.advance(10_000)
        assert rec.finalized == [(sid, None, True)]

    def test_normal_completion_cancels_safety_timer(self, scheduler):
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(2))
        ctl.response_ready(sid, "ok")
        scheduler.advance(2000)
        assert rec.finalized == [(sid, "ok", False)]
        assert scheduler.pending() == []


class TestInvariants:
    @pytest.mark.parametrize("ready_at", [0, 100, 300, 650, 1000, 1699, 1700, 4000, 29_000])
    @pytest.mark.parametrize("n_steps", [1, 2, 3, 5])
    def test_final_step_only_after_ready_and_monotonic(self, scheduler, ready_at, n_steps):
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(n_steps))
        scheduler.advance(ready_at)
        ctl.response_ready(sid, "r")
        scheduler.advance(40_000)

        visible = [v for _, _, v, _ in rec.renders]
        assert visible == sorted(visible)
        for _, _, v, ready in rec.renders:
            if v == n_steps:
                assert ready
        assert len(rec.finalized) == 1


class TestPreemption:
    def test_new_query_cancels_previous_session(self, scheduler):
        ctl, rec = _controller(scheduler)
        first = ctl.start(_steps(4))
        scheduler.advance(1000)
        second = ctl.start(_steps(3))
        assert rec.cancelled == [first]

        ctl.response_ready(first, "stale")
        assert ctl.state.session.session_id == second
        assert ctl.state.session.response_ready is False

        ctl.response_ready(second, "fresh")
        scheduler.advance(40_000)
        assert rec.finalized == [(second, "fresh", False)]

    def test_cancel_stops_all_timers(self, scheduler):
        ctl, rec = _controller(scheduler)
        sid = ctl.start(_steps(3))
        ctl.cancel(sid)
        assert scheduler.pending() == []
        assert ctl.state.phase == RevealPhase.IDLE
        scheduler.advance(60_000)
        assert rec.finalized == []
        assert rec.cancelled == [sid]


class TestFinalizeGuard:
    def _finish_twice(self, scheduler, strict):
        ctl, rec = _controller(scheduler, strict=strict)
        for _ in range(2):
            ctl.start(_steps(1), session_id="same")
            ctl.response_ready("same", "r")
            scheduler.advance(1000)
        return rec

    def test_duplicate_finalize_raises_in_strict_mode(self, scheduler):
        with pytest.raises(RevealInvariantError):
            self._finish_twice(scheduler, strict=True)

    def test_duplicate_finalize_is_dropped_otherwise(self, scheduler):
        rec = self._finish_twice(scheduler, strict=False)
        assert len(rec.finalized) == 1
