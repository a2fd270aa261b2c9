# service/chat_service.py
import asyncio
import logging
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
)
from uuid import uuid4
from core.anthropic_client import AnswerEvent
from core.entities import ChatTurn, GeneratedAnswer, ScoredResult
from core.reasoning_steps import ReasoningStepPlanner
from core.reveal import (
    AsyncioScheduler,
    ResponseRevealController,
    RevealPhase,
    RevealSession,
    RevealTimings,
    Scheduler,
)
from core.streaming import answer_payload, ndjson_line, reveal_payload
from model.api import StreamEvent
from service.retrieval_service import RetrievalOptions, RetrievalService
from util.constants import APOLOGY_MESSAGES, STILL_THINKING_MESSAGES
from util.types import EventType

logger = logging.getLogger(__name__)


class AnswerGenerator(Protocol):
    async def generate(
        self,
        query: str,
        context: Sequence[ScoredResult],
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ) -> GeneratedAnswer: ...

    def stream(
        self,
        query: str,
        context: Sequence[ScoredResult],
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ) -> AsyncIterator[AnswerEvent]: ...


def apology(language: str) -> GeneratedAnswer:
    return GeneratedAnswer(
        text=APOLOGY_MESSAGES.get(language, APOLOGY_MESSAGES["en"]), degraded=True
    )


def still_thinking(language: str) -> GeneratedAnswer:
    return GeneratedAnswer(
        text=STILL_THINKING_MESSAGES.get(language, STILL_THINKING_MESSAGES["en"]),
        degraded=True,
    )


def _event(kind: EventType, payload: Dict[str, Any]) -> bytes:
    return ndjson_line(StreamEvent(type=kind, payload=payload).model_dump())


class ChatService:
    """
    Conversation flow: retrieval, then generation racing the reasoning
    reveal. The reveal controller's finalize is the only place a final
    answer is committed to the stream.

    One live stream per conversation id; a newer request preempts the older
    one (its reveal is cancelled and its generation task with it).
    """

    def __init__(
        self,
        retrieval: RetrievalService,
        generator: AnswerGenerator,
        planner: Optional[ReasoningStepPlanner] = None,
        timings: Optional[RevealTimings] = None,
        scheduler_factory: Callable[[], Scheduler] = AsyncioScheduler,
        strict: Optional[bool] = None,
    ) -> None:
        self._retrieval = retrieval
        self._generator = generator
        self._planner = planner or ReasoningStepPlanner()
        self._timings = timings or RevealTimings()
        self._scheduler_factory = scheduler_factory
        self._strict = strict
        self._live: Dict[str, Tuple[ResponseRevealController, "asyncio.Task[None]"]] = {}
        self._orphans: Set["asyncio.Task[None]"] = set()

    async def chat(
        self,
        message: str,
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ) -> GeneratedAnswer:
        """One-shot answer, no reveal."""
        context = await self._retrieval.retrieve(message, RetrievalOptions(language=language))
        try:
            return await self._generator.generate(message, context, history, language)
        except Exception:
            logger.exception("chat.generate.error")
            return apology(language)

    async def stream_chat(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ) -> AsyncIterator[bytes]:
        """
        NDJSON events: `reveal` per render, then exactly one `final` and a
        `done`; a preempted stream ends with `error` and `done` instead.
        """
        cid = conversation_id or uuid4().hex
        queue: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()

        def _on_render(phase: RevealPhase, session: RevealSession) -> None:
            queue.put_nowait(("reveal", reveal_payload(phase, session)))

        def _on_finalize(session_id: str, result: Any, forced: bool) -> None:
            queue.put_nowait(("final", (session_id, result, forced)))

        def _on_cancel(session_id: str) -> None:
            queue.put_nowait(("cancelled", session_id))

        controller = ResponseRevealController(
            self._scheduler_factory(),
            self._timings,
            on_render=_on_render,
            on_finalize=_on_finalize,
            on_cancel=_on_cancel,
            strict=self._strict,
        )

        self._preempt(cid)
        steps = self._planner.build(message)
        sid = controller.start(steps)
        task = asyncio.create_task(
            self._answer(controller, sid, message, history, language)
        )
        live = (controller, task)
        self._live[cid] = live
        logger.info("chat.stream.start conv=%s session=%s steps=%d", cid, sid, len(steps))

        finalized = False
        try:
            while True:
                kind, payload = await queue.get()
                if kind == "reveal":
                    yield _event("reveal", dict(payload))
                elif kind == "final":
                    session_id, result, forced = payload
                    answer = result if result is not None else still_thinking(language)
                    finalized = True
                    yield _event("final", answer_payload(answer, session_id, forced))
                    yield _event("done", {})
                    return
                elif kind == "cancelled":
                    yield _event("error", {"message": "superseded by a newer message"})
                    yield _event("done", {})
                    return
        finally:
            if self._live.get(cid) is live:
                del self._live[cid]
            controller.cancel(sid)
            if not task.done():
                if finalized:
                    # forced finalize: the call keeps running, held until it settles
                    self._orphans.add(task)
                    task.add_done_callback(self._orphans.discard)
                else:
                    task.cancel()
            logger.info("chat.stream.end conv=%s session=%s finalized=%s", cid, sid, finalized)

    def _preempt(self, conversation_id: str) -> None:
        previous = self._live.pop(conversation_id, None)
        if previous is None:
            return
        controller, task = previous
        logger.info("chat.stream.preempt conv=%s", conversation_id)
        controller.cancel()
        if not task.done():
            task.cancel()

    async def _answer(
        self,
        controller: ResponseRevealController,
        session_id: str,
        message: str,
        history: Sequence[ChatTurn],
        language: str,
    ) -> None:
        answer: Optional[GeneratedAnswer] = None
        try:
            context = await self._retrieval.retrieve(
                message, RetrievalOptions(language=language)
            )
            started = False
            async for event in self._generator.stream(message, context, history, language):
                if event.kind == "partial" and not started:
                    started = True
                    controller.stream_started(session_id)
                elif event.kind == "complete":
                    answer = event.answer
                elif event.kind == "failed":
                    logger.warning("chat.generate.failed session=%s err=%s", session_id, event.error)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("chat.answer.error session=%s", session_id)
        controller.response_ready(session_id, answer or apology(language))
