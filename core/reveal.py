# core/reveal.py
"""
Paced reveal of reasoning steps, kept in step with the real answer.

The state machine is a single pure function, `transition(state, event)`,
returning the next state and a tuple of effects. `ResponseRevealController`
owns the timers and callbacks and turns effects into side effects.

Phases:
    IDLE -> REVEALING -> WAITING_FOR_FINAL_ANSWER -> SHOWING_FINAL_STEP -> COMPLETE

Guarantees per session:
    - the final step only becomes visible once the response is ready
    - visible_count never decreases
    - exactly one Finalize effect
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
    Union,
)
from collections import deque
from uuid import uuid4
from config.settings import settings
from core.entities import ReasoningStep
from util.enums import Environment
from util.errors import RevealInvariantError

logger = logging.getLogger(__name__)


class RevealPhase(str, Enum):
    IDLE = "idle"
    REVEALING = "revealing"
    WAITING_FOR_FINAL_ANSWER = "waiting_for_final_answer"
    SHOWING_FINAL_STEP = "showing_final_step"
    COMPLETE = "complete"


_ACTIVE = (
    RevealPhase.REVEALING,
    RevealPhase.WAITING_FOR_FINAL_ANSWER,
    RevealPhase.SHOWING_FINAL_STEP,
)


@dataclass(frozen=True)
class RevealTimings:
    first_step_ms: int = settings.REVEAL_FIRST_STEP_MS
    step_ms: int = settings.REVEAL_STEP_MS
    fast_step_ms: int = settings.REVEAL_FAST_STEP_MS
    final_step_ms: int = settings.REVEAL_FINAL_STEP_MS
    complete_ms: int = settings.REVEAL_COMPLETE_MS
    safety_timeout_ms: int = settings.REVEAL_SAFETY_TIMEOUT_MS


@dataclass(frozen=True)
class RevealSession:
    session_id: str
    steps: Tuple[ReasoningStep, ...]
    visible_count: int = 0
    response_ready: bool = False
    streaming: bool = False
    pending_result: Any = None
    finalized: bool = False

    @property
    def total(self) -> int:
        return len(self.steps)

    @property
    def final_visible(self) -> bool:
        return self.visible_count >= self.total

    @property
    def visible_steps(self) -> Tuple[ReasoningStep, ...]:
        return self.steps[: self.visible_count]


@dataclass(frozen=True)
class RevealState:
    phase: RevealPhase = RevealPhase.IDLE
    session: Optional[RevealSession] = None

    @property
    def active(self) -> bool:
        return self.phase in _ACTIVE


# ── Events ──


@dataclass(frozen=True)
class Start:
    session_id: str
    steps: Tuple[ReasoningStep, ...]


@dataclass(frozen=True)
class StepTimerFired:
    session_id: str


@dataclass(frozen=True)
class CompleteTimerFired:
    session_id: str


@dataclass(frozen=True)
class ResponseArrived:
    session_id: str
    result: Any


@dataclass(frozen=True)
class StreamStarted:
    session_id: str


@dataclass(frozen=True)
class SafetyTimeoutFired:
    session_id: str


@dataclass(frozen=True)
class Cancel:
    session_id: Optional[str] = None


RevealEvent = Union[
    Start,
    StepTimerFired,
    CompleteTimerFired,
    ResponseArrived,
    StreamStarted,
    SafetyTimeoutFired,
    Cancel,
]


# ── Effects ──


@dataclass(frozen=True)
class ScheduleStep:
    """Replaces any pending step timer of the session."""

    session_id: str
    delay_ms: int


@dataclass(frozen=True)
class ScheduleComplete:
    session_id: str
    delay_ms: int


@dataclass(frozen=True)
class ScheduleSafetyTimeout:
    session_id: str
    delay_ms: int


@dataclass(frozen=True)
class CancelTimers:
    session_id: str


@dataclass(frozen=True)
class Render:
    phase: RevealPhase
    session: RevealSession


@dataclass(frozen=True)
class Finalize:
    session_id: str
    result: Any
    forced: bool


@dataclass(frozen=True)
class Cancelled:
    session_id: str


RevealEffect = Union[
    ScheduleStep,
    ScheduleComplete,
    ScheduleSafetyTimeout,
    CancelTimers,
    Render,
    Finalize,
    Cancelled,
]


@dataclass(frozen=True)
class Transition:
    state: RevealState
    effects: Tuple[RevealEffect, ...] = ()


def next_step_delay(session: RevealSession, timings: RevealTimings) -> Optional[int]:
    """
    Delay before the next step becomes visible, or None when the next step
    is the final one and the response is not ready yet.
    """
    shown = session.visible_count
    non_final = session.total - 1
    if shown >= session.total:
        return None
    if shown >= non_final and not session.response_ready:
        return None
    if shown == 0:
        return timings.first_step_ms
    if shown < non_final:
        return timings.fast_step_ms if session.response_ready else timings.step_ms
    return timings.final_step_ms


def _pacing(session: RevealSession, timings: RevealTimings) -> Tuple[RevealPhase, Tuple[RevealEffect, ...]]:
    delay = next_step_delay(session, timings)
    if delay is None:
        return RevealPhase.WAITING_FOR_FINAL_ANSWER, ()
    final_next = session.visible_count == session.total - 1
    phase = RevealPhase.SHOWING_FINAL_STEP if final_next else RevealPhase.REVEALING
    return phase, (ScheduleStep(session.session_id, delay),)


def _finish(state: RevealState, forced: bool) -> Transition:
    session = replace(state.session, finalized=True)
    done = RevealState(RevealPhase.COMPLETE, session)
    return Transition(
        done,
        (
            CancelTimers(session.session_id),
            Finalize(session.session_id, session.pending_result, forced),
            Render(RevealPhase.COMPLETE, session),
        ),
    )


def transition(
    state: RevealState, event: RevealEvent, timings: RevealTimings = RevealTimings()
) -> Transition:
    if isinstance(event, Start):
        return _on_start(state, event, timings)

    session = state.session
    if session is None or not state.active:
        return Transition(state)
    if isinstance(event, Cancel):
        if event.session_id is not None and event.session_id != session.session_id:
            return Transition(state)
        return Transition(
            RevealState(RevealPhase.IDLE, session),
            (CancelTimers(session.session_id), Cancelled(session.session_id)),
        )
    if event.session_id != session.session_id:
        # stale timer or late answer from a preempted session
        return Transition(state)

    if isinstance(event, StepTimerFired):
        return _on_step(state, timings)
    if isinstance(event, ResponseArrived):
        return _on_response(state, event, timings)
    if isinstance(event, StreamStarted):
        if session.streaming:
            return Transition(state)
        updated = RevealState(state.phase, replace(session, streaming=True))
        return Transition(updated, (Render(updated.phase, updated.session),))
    if isinstance(event, CompleteTimerFired):
        if state.phase != RevealPhase.SHOWING_FINAL_STEP or not session.final_visible:
            return Transition(state)
        return _finish(state, forced=False)
    if isinstance(event, SafetyTimeoutFired):
        return _finish(state, forced=True)
    return Transition(state)


def _on_start(state: RevealState, event: Start, timings: RevealTimings) -> Transition:
    if not event.steps:
        raise ValueError("a reveal needs at least one step")
    effects = []
    if state.active and state.session is not None:
        old = state.session.session_id
        effects += [CancelTimers(old), Cancelled(old)]

    session = RevealSession(event.session_id, tuple(event.steps))
    phase, pacing = _pacing(session, timings)
    effects.append(ScheduleSafetyTimeout(session.session_id, timings.safety_timeout_ms))
    effects.extend(pacing)
    effects.append(Render(phase, session))
    return Transition(RevealState(phase, session), tuple(effects))


def _on_step(state: RevealState, timings: RevealTimings) -> Transition:
    session = state.session
    if state.phase not in (RevealPhase.REVEALING, RevealPhase.SHOWING_FINAL_STEP):
        return Transition(state)
    if session.final_visible:
        return Transition(state)
    if session.visible_count == session.total - 1 and not session.response_ready:
        return Transition(state)

    session = replace(session, visible_count=session.visible_count + 1)
    if session.final_visible:
        phase = RevealPhase.SHOWING_FINAL_STEP
        effects: Tuple[RevealEffect, ...] = (
            ScheduleComplete(session.session_id, timings.complete_ms),
        )
    else:
        phase, effects = _pacing(session, timings)
    return Transition(
        RevealState(phase, session), effects + (Render(phase, session),)
    )


def _on_response(
    state: RevealState, event: ResponseArrived, timings: RevealTimings
) -> Transition:
    session = state.session
    if session.response_ready:
        return Transition(state)
    session = replace(session, response_ready=True, pending_result=event.result)

    if state.phase == RevealPhase.REVEALING and session.visible_count == 0:
        # first step is already on its way at the opening pace
        return Transition(
            RevealState(state.phase, session), (Render(state.phase, session),)
        )
    phase, effects = _pacing(session, timings)
    return Transition(RevealState(phase, session), effects + (Render(phase, session),))


# ── Controller ──


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)


RenderCallback = Callable[[RevealPhase, RevealSession], None]
FinalizeCallback = Callable[[str, Any, bool], None]
CancelCallback = Callable[[str], None]


class ResponseRevealController:
    """
    Drives `transition` with real timers.

    Timers live in three slots (step, complete, safety); scheduling into a
    slot cancels whatever was there. Events raised from inside a callback are
    queued and processed after the current effects, in order.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        timings: Optional[RevealTimings] = None,
        on_render: Optional[RenderCallback] = None,
        on_finalize: Optional[FinalizeCallback] = None,
        on_cancel: Optional[CancelCallback] = None,
        strict: Optional[bool] = None,
    ) -> None:
        self._scheduler = scheduler
        self._timings = timings or RevealTimings()
        self._on_render = on_render
        self._on_finalize = on_finalize
        self._on_cancel = on_cancel
        self._strict = (
            settings.APP_ENV == Environment.DEV if strict is None else strict
        )
        self._state = RevealState()
        self._timers: Dict[str, TimerHandle] = {}
        self._finalized: Set[str] = set()
        self._queue: Deque[RevealEvent] = deque()
        self._dispatching = False

    @property
    def state(self) -> RevealState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._state.session.session_id if self._state.session else None

    def start(
        self, steps: Sequence[ReasoningStep], session_id: Optional[str] = None
    ) -> str:
        sid = session_id or uuid4().hex
        self.dispatch(Start(sid, tuple(steps)))
        return sid

    def response_ready(self, session_id: str, result: Any) -> None:
        self.dispatch(ResponseArrived(session_id, result))

    def stream_started(self, session_id: str) -> None:
        self.dispatch(StreamStarted(session_id))

    def cancel(self, session_id: Optional[str] = None) -> None:
        self.dispatch(Cancel(session_id))

    def dispatch(self, event: RevealEvent) -> None:
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                step = transition(self._state, self._queue.popleft(), self._timings)
                self._state = step.state
                for effect in step.effects:
                    self._apply(effect)
        finally:
            self._dispatching = False

    def _apply(self, effect: RevealEffect) -> None:
        if isinstance(effect, ScheduleStep):
            self._schedule("step", effect.delay_ms, StepTimerFired(effect.session_id))
        elif isinstance(effect, ScheduleComplete):
            self._schedule(
                "complete", effect.delay_ms, CompleteTimerFired(effect.session_id)
            )
        elif isinstance(effect, ScheduleSafetyTimeout):
            self._schedule(
                "safety", effect.delay_ms, SafetyTimeoutFired(effect.session_id)
            )
        elif isinstance(effect, CancelTimers):
            self._cancel_timers()
        elif isinstance(effect, Render):
            if self._on_render is not None:
                self._on_render(effect.phase, effect.session)
        elif isinstance(effect, Finalize):
            self._finalize(effect)
        elif isinstance(effect, Cancelled):
            logger.info("reveal.cancelled session=%s", effect.session_id)
            if self._on_cancel is not None:
                self._on_cancel(effect.session_id)

    def _finalize(self, effect: Finalize) -> None:
        if effect.session_id in self._finalized:
            if self._strict:
                raise RevealInvariantError(
                    f"session {effect.session_id} finalized twice"
                )
            logger.error("reveal.finalize.duplicate session=%s", effect.session_id)
            return
        self._finalized.add(effect.session_id)
        logger.info(
            "reveal.finalize session=%s forced=%s has_result=%s",
            effect.session_id,
            effect.forced,
            effect.result is not None,
        )
        if self._on_finalize is not None:
            self._on_finalize(effect.session_id, effect.result, effect.forced)

    def _schedule(self, slot: str, delay_ms: int, event: RevealEvent) -> None:
        previous = self._timers.pop(slot, None)
        if previous is not None:
            previous.cancel()
        handle: Optional[TimerHandle] = None

        def _fire() -> None:
            if self._timers.get(slot) is handle:
                del self._timers[slot]
            self.dispatch(event)

        handle = self._scheduler.call_later(delay_ms, _fire)
        self._timers[slot] = handle

    def _cancel_timers(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
