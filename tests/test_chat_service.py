# tests/test_chat_service.py
"""End-to-end chat flow over NDJSON: reveal events, single final, degraded answers, preemption."""
from __future__ import annotations

import asyncio
import json
from typing import List

from conftest import FakeEmbedder, FakeGenerator, make_entry
from core.entities import KnowledgeCategory
from core.lru_cache import CacheService
from core.reveal import RevealTimings
from repository.knowledge_repository import InMemoryKnowledgeRepository
from service.chat_service import ChatService
from service.retrieval_service import RetrievalService
from util.constants import APOLOGY_MESSAGES, STILL_THINKING_MESSAGES

FAST = RevealTimings(
    first_step_ms=5,
    step_ms=10,
    fast_step_ms=2,
    final_step_ms=3,
    complete_ms=5,
    safety_timeout_ms=2_000,
)


def _service(generator, timings=FAST):
    store = InMemoryKnowledgeRepository(
        [
            make_entry(
                "skills-1",
                title="Technical Skills",
                content="React, TypeScript and Python.",
                category=KnowledgeCategory.SKILLS,
            )
        ]
    )
    retrieval = RetrievalService(store, FakeEmbedder(), CacheService(10, 10))
    return ChatService(retrieval, generator, timings=timings, strict=True)


async def _drain(agen) -> List[dict]:
    return [json.loads(line) async for line in agen]


def _stream(service, message="What are his React skills?", **kw) -> List[dict]:
    return asyncio.run(_drain(service.stream_chat(message, **kw)))


class TestStreamChat:
    def test_reveal_then_single_final_then_done(self):
        gen = FakeGenerator(text="He ships React apps.")
        events = _stream(_service(gen))
        kinds = [e["type"] for e in events]

        assert kinds[-2:] == ["final", "done"]
        assert kinds.count("final") == 1
        assert set(kinds[:-2]) == {"reveal"}

        final = events[-2]["payload"]
        assert final["response"] == "He ships React apps."
        assert final["forced"] is False
        assert final["degraded"] is False
        assert final["suggestions"] == ["What else?"]

    def test_final_step_visible_before_final_event(self):
        events = _stream(_service(FakeGenerator()))
        reveals = [e["payload"] for e in events if e["type"] == "reveal"]
        visible = [r["visible"] for r in reveals]
        assert visible == sorted(visible)
        last = reveals[-1]
        assert last["visible"] == last["total"]
        assert last["steps"][-1]["text"] == "Analysis complete!"
        for r in reveals:
            if r["visible"] == r["total"]:
                assert r["responseReady"] is True

    def test_generator_receives_retrieved_context(self):
        gen = FakeGenerator()
        _stream(_service(gen), message="react skills")
        assert [r.id for r in gen.contexts[0]] == ["skills-1"]

    def test_generation_failure_finalizes_with_apology(self):
        events = _stream(_service(FakeGenerator(fail=True)))
        final = events[-2]["payload"]
        assert final["response"] == APOLOGY_MESSAGES["en"]
        assert final["degraded"] is True
        assert final["forced"] is False

    def test_indonesian_apology(self):
        events = _stream(_service(FakeGenerator(fail=True)), language="id")
        assert events[-2]["payload"]["response"] == APOLOGY_MESSAGES["id"]

    def test_slow_generation_hits_safety_timeout(self):
        timings = RevealTimings(5, 10, 2, 3, 5, 100)
        events = _stream(_service(FakeGenerator(delay=5.0), timings=timings))
        final = events[-2]["payload"]
        assert final["forced"] is True
        assert final["response"] == STILL_THINKING_MESSAGES["en"]
        assert [e["type"] for e in events].count("final") == 1

    def test_newer_message_preempts_same_conversation(self):
        service = _service(FakeGenerator(delay=0.2))

        async def go():
            first = service.stream_chat("React skills?", conversation_id="c1")
            head = json.loads(await first.__anext__())
            second = service.stream_chat("And Python?", conversation_id="c1")
            second_head = json.loads(await second.__anext__())
            first_rest = await _drain(first)
            second_rest = await _drain(second)
            return head, first_rest, [second_head] + second_rest

        head, first_rest, second_events = asyncio.run(go())
        assert head["type"] == "reveal"
        first_kinds = [e["type"] for e in first_rest]
        assert first_kinds[-2:] == ["error", "done"]
        assert "final" not in first_kinds
        assert [e["type"] for e in second_events][-2:] == ["final", "done"]

    def test_other_conversations_are_independent(self):
        service = _service(FakeGenerator(delay=0.05))

        async def go():
            return await asyncio.gather(
                _drain(service.stream_chat("React?", conversation_id="a")),
                _drain(service.stream_chat("Python?", conversation_id="b")),
            )

        for events in asyncio.run(go()):
            assert [e["type"] for e in events][-2:] == ["final", "done"]


class TestOneShotChat:
    def test_returns_generated_answer(self):
        answer = asyncio.run(_service(FakeGenerator(text="Yes.")).chat("React?"))
        assert answer.text == "Yes."
        assert answer.degraded is False

    def test_failure_returns_apology(self):
        answer = asyncio.run(_service(FakeGenerator(fail=True)).chat("React?"))
        assert answer.text == APOLOGY_MESSAGES["en"]
        assert answer.degraded is True


def test_forced_finalize_keeps_generation_referenced_until_it_settles():
    timings = RevealTimings(5, 10, 2, 3, 5, 50)
    service = _service(FakeGenerator(delay=0.3), timings=timings)

    async def go():
        events = await _drain(service.stream_chat("React?", conversation_id="slow"))
        held = len(service._orphans)
        await asyncio.sleep(0.5)
        return events, held, len(service._orphans)

    events, held, after = asyncio.run(go())
    assert events[-2]["payload"]["forced"] is True
    assert held == 1
    assert after == 0
