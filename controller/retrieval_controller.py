# controller/retrieval_controller.py
from fastapi import APIRouter, Depends
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from core.hybrid_ranker import search_stats
from model.api import (
    CacheClearResponse,
    ReembedRequest,
    ReembedResponse,
    RetrieveRequest,
    RetrieveResponse,
    ScoredResultModel,
    SearchStatsModel,
)
from service.knowledge_service import KnowledgeService
from service.retrieval_service import RetrievalOptions, RetrievalService
from util.constants import InternalURIs
from controller.controller_dependencies import (
    get_knowledge_service,
    get_retrieval_service,
)

retrieval_router = APIRouter(
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
)


@retrieval_router.post(InternalURIs.RETRIEVE, response_model=RetrieveResponse)
async def retrieve(
    payload: RetrieveRequest,
    service: RetrievalService = Depends(get_retrieval_service),
) -> RetrieveResponse:
    options = RetrievalOptions(
        language=payload.language,
        top_k=payload.topK or settings.RETRIEVAL_TOP_K,
        threshold=(
            payload.threshold
            if payload.threshold is not None
            else settings.RETRIEVAL_THRESHOLD
        ),
        category=payload.category,
        use_vector=payload.useVector,
        use_keyword=payload.useKeyword,
    )
    results = await service.retrieve(payload.query, options)
    return RetrieveResponse(
        results=[ScoredResultModel.from_result(r) for r in results],
        stats=SearchStatsModel.from_stats(search_stats(results)),
    )


@retrieval_router.post(InternalURIs.REEMBED_ENTRY, response_model=ReembedResponse)
async def reembed_entry(
    entry_id: str,
    payload: ReembedRequest,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> ReembedResponse:
    entry = await service.reembed(entry_id, payload.title, payload.content)
    return ReembedResponse(id=entry.id, dimensions=len(entry.embedding))


@retrieval_router.post(InternalURIs.CLEAR_CACHE, response_model=CacheClearResponse)
async def clear_cache(
    service: KnowledgeService = Depends(get_knowledge_service),
) -> CacheClearResponse:
    return CacheClearResponse(ok=True, cleared=service.clear_caches())
