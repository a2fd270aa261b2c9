# service/knowledge_service.py
import logging
from typing import Dict
from core.embeddings import EmbeddingProvider
from core.entities import KnowledgeEntry
from repository.knowledge_repository import KnowledgeStore
from service.retrieval_service import RetrievalService
from util.enums import ErrorMessage
from util.errors import AppError, InvalidEntryError

logger = logging.getLogger(__name__)


class KnowledgeService:
    """Corpus edits. Every edit clears the retrieval caches."""

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: EmbeddingProvider,
        retrieval: RetrievalService,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._retrieval = retrieval

    async def reembed(self, entry_id: str, title: str, content: str) -> KnowledgeEntry:
        try:
            updated = await self._store.reembed(entry_id, title, content, self._embedder)
        except InvalidEntryError as e:
            logger.warning("knowledge.reembed.rejected id=%s reason=%s", entry_id, e)
            raise AppError.of(ErrorMessage.EMBEDDING_UNAVAILABLE) from e
        if updated is None:
            raise AppError.of(ErrorMessage.UNKNOWN_ENTRY)
        self._retrieval.invalidate()
        return updated

    def clear_caches(self) -> Dict[str, int]:
        before = self._retrieval.caches.stats()
        self._retrieval.invalidate()
        return {"embeddings": before["embeddings"], "results": before["results"]}
