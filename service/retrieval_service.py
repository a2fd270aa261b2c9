# service/retrieval_service.py
import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import List, Optional
from config.settings import settings
from core.embeddings import EmbeddingProvider
from core.entities import KnowledgeCategory, KnowledgeEntry, ScoredResult
from core.hybrid_ranker import RankingWeights, merge
from core.keyword_scorer import KeywordScorer
from core.lru_cache import CacheService, generate_cache_key
from core.vector_index import VectorFilters, VectorIndex
from repository.knowledge_repository import KnowledgeStore
from util.timing import timed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalOptions:
    language: str = "en"
    top_k: int = settings.RETRIEVAL_TOP_K
    threshold: float = settings.RETRIEVAL_THRESHOLD
    vector_weight: float = settings.VECTOR_WEIGHT
    keyword_weight: float = settings.KEYWORD_WEIGHT
    category: Optional[KnowledgeCategory] = None
    use_vector: bool = True
    use_keyword: bool = True


class RetrievalService:
    """
    Hybrid retrieval over the knowledge corpus.

    Failures below this layer are absorbed here: a failing path is dropped
    and the other one carries the query; a failing store yields no context.
    `retrieve` itself does not raise for those.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: EmbeddingProvider,
        caches: CacheService,
        scorer: Optional[KeywordScorer] = None,
        category_bonus: float = settings.CATEGORY_BONUS,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._caches = caches
        self._scorer = scorer or KeywordScorer()
        self._category_bonus = category_bonus

    @property
    def caches(self) -> CacheService:
        return self._caches

    def invalidate(self) -> None:
        self._caches.clear()
        logger.info("retrieval.cache.cleared")

    async def retrieve(
        self, query: str, options: RetrievalOptions = RetrievalOptions()
    ) -> List[ScoredResult]:
        if not (query or "").strip() or options.top_k <= 0:
            return []
        if not (options.use_vector or options.use_keyword):
            return []

        key = generate_cache_key(query, {"search": "hybrid", **asdict(options)})
        cached = self._caches.results.get(key)
        if cached is not None:
            logger.debug("retrieval.cache.hit")
            return list(cached)

        try:
            corpus = await self._store.snapshot(
                language=options.language, category=options.category
            )
        except Exception:
            logger.exception("retrieval.store.error")
            return []
        if not corpus:
            return []

        candidates = options.top_k * 2
        vector_task = (
            self._vector_path(query, corpus, options, candidates)
            if options.use_vector
            else _nothing()
        )
        keyword_task = (
            self._keyword_path(query, corpus, candidates)
            if options.use_keyword
            else _nothing()
        )

        with timed(logger, "retrieval.search", docs=len(corpus), top_k=options.top_k):
            vector_out, keyword_out = await asyncio.gather(
                vector_task, keyword_task, return_exceptions=True
            )

        failed = False
        if isinstance(vector_out, BaseException):
            logger.warning("retrieval.vector.degraded err=%s", vector_out.__class__.__name__)
            vector_out, failed = [], True
        if isinstance(keyword_out, BaseException):
            logger.warning("retrieval.keyword.degraded err=%s", keyword_out.__class__.__name__)
            keyword_out, failed = [], True

        weights = RankingWeights(
            vector_weight=options.vector_weight,
            keyword_weight=options.keyword_weight,
            category_bonus=self._category_bonus,
        )
        results = merge(vector_out, keyword_out, weights)[: options.top_k]
        logger.info(
            "retrieval.done vector=%d keyword=%d results=%d degraded=%s",
            len(vector_out),
            len(keyword_out),
            len(results),
            failed,
        )

        # a degraded answer should not outlive the failure
        if not failed:
            self._caches.results.set(key, tuple(results))
        return results

    async def _vector_path(
        self,
        query: str,
        corpus: List[KnowledgeEntry],
        options: RetrievalOptions,
        candidates: int,
    ) -> List[ScoredResult]:
        vector = await self._embedder.embed(query)
        index = VectorIndex.from_entries(corpus, dimensions=len(vector))
        return index.query(
            vector,
            VectorFilters(language=options.language, category=options.category),
            threshold=options.threshold,
            top_k=candidates,
        )

    async def _keyword_path(
        self, query: str, corpus: List[KnowledgeEntry], candidates: int
    ) -> List[ScoredResult]:
        return self._scorer.score(query, corpus)[:candidates]


async def _nothing() -> List[ScoredResult]:
    return []
