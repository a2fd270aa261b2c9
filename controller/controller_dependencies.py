# controller/controller_dependencies.py
from functools import lru_cache
from config.settings import settings
from core.anthropic_client import AnthropicGenerator
from core.embeddings import EmbeddingProvider
from core.lru_cache import CacheService
from repository.knowledge_repository import (
    InMemoryKnowledgeRepository,
    KnowledgeStore,
    RedisKnowledgeRepository,
)
from service.chat_service import ChatService
from service.knowledge_service import KnowledgeService
from service.retrieval_service import RetrievalService

# Services are process-wide: the caches and the per-conversation stream
# registry must be shared across requests.


@lru_cache(maxsize=1)
def get_cache_service() -> CacheService:
    return CacheService()


@lru_cache(maxsize=1)
def get_knowledge_store() -> KnowledgeStore:
    if settings.KNOWLEDGE_BACKEND == "memory":
        if settings.KNOWLEDGE_SEED_PATH:
            return InMemoryKnowledgeRepository.from_json_file(settings.KNOWLEDGE_SEED_PATH)
        return InMemoryKnowledgeRepository()
    return RedisKnowledgeRepository()


@lru_cache(maxsize=1)
def get_embedding_provider() -> EmbeddingProvider:
    return EmbeddingProvider(cache=get_cache_service().embeddings)


@lru_cache(maxsize=1)
def get_retrieval_service() -> RetrievalService:
    return RetrievalService(
        get_knowledge_store(), get_embedding_provider(), get_cache_service()
    )


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
    return ChatService(get_retrieval_service(), AnthropicGenerator())


@lru_cache(maxsize=1)
def get_knowledge_service() -> KnowledgeService:
    return KnowledgeService(
        get_knowledge_store(), get_embedding_provider(), get_retrieval_service()
    )
