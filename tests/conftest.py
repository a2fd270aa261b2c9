# tests/conftest.py
"""Shared fakes: manual clock for reveal timers, corpus builders, fake collaborators."""
from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from core.anthropic_client import AnswerEvent
from core.entities import (
    ChatTurn,
    GeneratedAnswer,
    KnowledgeCategory,
    KnowledgeEntry,
    ScoredResult,
)


# ── Manual scheduler ──


class ManualHandle:
    def __init__(self, due: int, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock; callbacks fire only inside `advance`."""

    def __init__(self) -> None:
        self.now = 0
        self._seq = 0
        self._handles: List[ManualHandle] = []

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now + delay_ms, self._seq, callback)
        self._seq += 1
        self._handles.append(handle)
        return handle

    def pending(self) -> List[ManualHandle]:
        return [h for h in self._handles if not h.cancelled]

    def advance(self, ms: int) -> None:
        target = self.now + ms
        while True:
            due = [h for h in self.pending() if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.seq))
            self._handles.remove(handle)
            self.now = handle.due
            handle.callback()
        self.now = target


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


# ── Corpus ──


def make_entry(
    entry_id: str,
    title: str = "Title",
    content: str = "Content",
    category: Optional[KnowledgeCategory] = KnowledgeCategory.OTHER,
    embedding: Sequence[float] = (1.0, 0.0, 0.0),
    language: str = "en",
    is_active: bool = True,
    tags: Sequence[str] = (),
) -> KnowledgeEntry:
    return KnowledgeEntry(
        id=entry_id,
        title=title,
        content=content,
        category=category,
        tags=frozenset(tags),
        language=language,
        embedding=tuple(embedding),
        is_active=is_active,
    )


# ── Fake collaborators ──


class FakeEmbedder:
    """Maps known texts to vectors; everything else gets `default`."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Sequence[float] = (1.0, 0.0, 0.0),
        error: Optional[Exception] = None,
        dimensions: int = 3,
    ) -> None:
        self.vectors = vectors or {}
        self.default = list(default)
        self.dimensions = dimensions
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.vectors.get(text, self.default)


class FakeGenerator:
    """Answer generator with scripted text, latency and failure."""

    def __init__(
        self,
        text: str = "David builds web apps with React.",
        delay: float = 0.0,
        fail: bool = False,
        chunks: int = 3,
    ) -> None:
        self.text = text
        self.delay = delay
        self.fail = fail
        self.chunks = chunks
        self.contexts: List[Sequence[ScoredResult]] = []

    def _answer(self) -> GeneratedAnswer:
        return GeneratedAnswer(text=self.text, suggestions=("What else?",), response_time_ms=5)

    async def generate(
        self,
        query: str,
        context: Sequence[ScoredResult],
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ) -> GeneratedAnswer:
        self.contexts.append(context)
        await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("generation down")
        return self._answer()

    async def stream(
        self,
        query: str,
        context: Sequence[ScoredResult],
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ):
        self.contexts.append(context)
        await asyncio.sleep(self.delay)
        if self.fail:
            yield AnswerEvent("failed", error="generation down")
            return
        for i in range(self.chunks):
            yield AnswerEvent("partial", text=f"part{i}")
        answer = self._answer()
        yield AnswerEvent("complete", text=answer.text, answer=answer)
