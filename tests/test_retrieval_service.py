# tests/test_retrieval_service.py
"""Hybrid retrieval orchestration: ranking, empty results, degraded paths, caching."""
from __future__ import annotations

import asyncio

from conftest import FakeEmbedder, make_entry
from core.entities import KnowledgeCategory, Provenance
from core.lru_cache import CacheService
from repository.knowledge_repository import InMemoryKnowledgeRepository
from service.retrieval_service import RetrievalOptions, RetrievalService

SKILLS = make_entry(
    "skills-1",
    title="Technical Skills",
    content="David works daily with React, TypeScript and Python. His strongest skills are in frontend engineering.",
    category=KnowledgeCategory.SKILLS,
    embedding=(0.9, 0.1, 0.0),
    tags=("React",),
)
HOBBY = make_entry(
    "hobby-1",
    title="Hobbies",
    content="Plays guitar and enjoys hiking on weekends.",
    category=KnowledgeCategory.PERSONAL,
    embedding=(0.0, 0.0, 1.0),
)
INDO = make_entry(
    "skills-id",
    title="Keahlian Teknis",
    content="David menguasai React dan Python.",
    category=KnowledgeCategory.SKILLS,
    embedding=(0.9, 0.1, 0.0),
    language="id",
)


def _service(entries, embedder=None, caches=None):
    store = InMemoryKnowledgeRepository(entries)
    return RetrievalService(store, embedder or FakeEmbedder(), caches or CacheService(10, 10))


class FailingStore:
    async def snapshot(self, **_kw):
        raise ConnectionError("redis down")


class TestHybridRetrieval:
    def test_skills_question_returns_hybrid_match(self):
        svc = _service([SKILLS, HOBBY, INDO])
        results = asyncio.run(
            svc.retrieve("What are David's technical skills?", RetrievalOptions(threshold=0.1, top_k=3))
        )
        assert results[0].id == "skills-1"
        assert results[0].provenance == Provenance.HYBRID
        assert results[0].vector_score > 0
        assert results[0].keyword_score > 0
        assert {"technical", "skills"} <= results[0].matched_keywords
        assert "skills-id" not in {r.id for r in results}

    def test_top_k_limits_results(self):
        entries = [make_entry(f"e{i}", content=f"react project {i}", embedding=(1.0, 0.0, 0.0)) for i in range(8)]
        results = asyncio.run(_service(entries).retrieve("react", RetrievalOptions(top_k=3)))
        assert len(results) == 3

    def test_empty_corpus_returns_empty_list(self):
        assert asyncio.run(_service([]).retrieve("anything at all")) == []

    def test_everything_below_threshold_returns_empty_list(self):
        svc = _service([HOBBY], embedder=FakeEmbedder(default=(1.0, 0.0, 0.0)))
        results = asyncio.run(svc.retrieve("kubernetes", RetrievalOptions(threshold=0.5)))
        assert results == []

    def test_blank_query_returns_empty_list(self):
        assert asyncio.run(_service([SKILLS]).retrieve("   ")) == []

    def test_language_filter(self):
        results = asyncio.run(
            _service([SKILLS, INDO]).retrieve("react python", RetrievalOptions(language="id"))
        )
        assert [r.id for r in results] == ["skills-id"]

    def test_keyword_only_option(self):
        embedder = FakeEmbedder()
        results = asyncio.run(
            _service([SKILLS, HOBBY], embedder=embedder).retrieve(
                "guitar", RetrievalOptions(use_vector=False)
            )
        )
        assert [r.id for r in results] == ["hobby-1"]
        assert results[0].provenance == Provenance.KEYWORD
        assert embedder.calls == []


class TestDegradedModes:
    def test_vector_failure_degrades_to_keyword_only(self):
        caches = CacheService(10, 10)
        svc = _service([SKILLS, HOBBY], embedder=FakeEmbedder(error=RuntimeError("boom")), caches=caches)
        results = asyncio.run(svc.retrieve("react skills"))
        assert [r.id for r in results] == ["skills-1"]
        assert results[0].provenance == Provenance.KEYWORD
        assert len(caches.results) == 0

    def test_store_failure_returns_empty_list(self):
        svc = RetrievalService(FailingStore(), FakeEmbedder(), CacheService(10, 10))
        assert asyncio.run(svc.retrieve("react")) == []


class TestResultCache:
    def test_repeat_query_is_served_from_cache(self):
        embedder = FakeEmbedder()
        svc = _service([SKILLS, HOBBY], embedder=embedder)

        async def go():
            first = await svc.retrieve("React skills")
            second = await svc.retrieve("  react SKILLS ")
            return first, second

        first, second = asyncio.run(go())
        assert [r.id for r in first] == [r.id for r in second]
        assert len(embedder.calls) == 1

    def test_different_options_are_cached_separately(self):
        embedder = FakeEmbedder()
        svc = _service([SKILLS, HOBBY], embedder=embedder)

        async def go():
            await svc.retrieve("react", RetrievalOptions(top_k=1))
            await svc.retrieve("react", RetrievalOptions(top_k=2))

        asyncio.run(go())
        assert len(embedder.calls) == 2

    def test_invalidate_clears_caches(self):
        caches = CacheService(10, 10)
        embedder = FakeEmbedder()
        svc = _service([SKILLS], embedder=embedder, caches=caches)

        async def go():
            await svc.retrieve("react")
            svc.invalidate()
            await svc.retrieve("react")

        asyncio.run(go())
        assert len(embedder.calls) == 2
