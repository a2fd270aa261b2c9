# repository/knowledge_repository.py
import json
import logging
from typing import Dict, Final, Iterable, List, Optional, Protocol
from pydantic import ValidationError
from redis.asyncio import Redis
from config.cache import get_redis
from core.embeddings import EmbeddingProvider
from core.entities import KnowledgeCategory, KnowledgeEntry
from model.knowledge import KnowledgeRecord
from util.errors import InvalidEntryError
from repository.namespaces import KNOWLEDGE

KEY: Final[str] = KNOWLEDGE

logger = logging.getLogger(__name__)


def _accepts(
    entry: KnowledgeEntry,
    language: Optional[str],
    category: Optional[KnowledgeCategory],
    include_inactive: bool,
) -> bool:
    if not include_inactive and not entry.is_active:
        return False
    if language and entry.language != language:
        return False
    if category is not None and entry.category != category:
        return False
    return True


def embedding_text(title: str, content: str) -> str:
    return f"{title}\n{content}"


async def embed_for_entry(
    entry_id: str, title: str, content: str, embedder: EmbeddingProvider
) -> List[float]:
    vector = await embedder.embed(embedding_text(title, content))
    if len(vector) != embedder.dimensions:
        raise InvalidEntryError(
            f"entry {entry_id} re-embedded to {len(vector)} dims, index expects {embedder.dimensions}"
        )
    return vector


class KnowledgeStore(Protocol):
    async def snapshot(
        self,
        language: Optional[str] = None,
        category: Optional[KnowledgeCategory] = None,
        include_inactive: bool = False,
    ) -> List[KnowledgeEntry]: ...

    async def get(self, entry_id: str) -> Optional[KnowledgeEntry]: ...

    async def put(self, entry: KnowledgeEntry) -> None: ...

    async def reembed(
        self, entry_id: str, title: str, content: str, embedder: EmbeddingProvider
    ) -> Optional[KnowledgeEntry]: ...


class RedisKnowledgeRepository:
    """
    Flow:
    - One hash, field = entry id, value = KnowledgeRecord JSON.
    - Reads take a full snapshot per retrieval; the corpus is small.
    - Re-embedding writes content and vector in a single HSET.
    """

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    @staticmethod
    def _decode(entry_id: str, raw) -> Optional[KnowledgeEntry]:
        try:
            return KnowledgeRecord.model_validate_json(raw).to_entry()
        except ValidationError:
            logger.warning("knowledge.record.invalid id=%s", entry_id)
            return None

    async def snapshot(
        self,
        language: Optional[str] = None,
        category: Optional[KnowledgeCategory] = None,
        include_inactive: bool = False,
    ) -> List[KnowledgeEntry]:
        r = await self._client()
        raw = await r.hgetall(KEY)
        out: List[KnowledgeEntry] = []
        for entry_id in sorted(raw):
            entry = self._decode(entry_id, raw[entry_id])
            if entry is not None and _accepts(entry, language, category, include_inactive):
                out.append(entry)
        return out

    async def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        if not entry_id:
            return None
        r = await self._client()
        raw = await r.hget(KEY, entry_id)
        if raw is None:
            return None
        return self._decode(entry_id, raw)

    async def put(self, entry: KnowledgeEntry) -> None:
        r = await self._client()
        payload = KnowledgeRecord.from_entry(entry).model_dump_json()
        await r.hset(KEY, entry.id, payload)

    async def reembed(
        self, entry_id: str, title: str, content: str, embedder: EmbeddingProvider
    ) -> Optional[KnowledgeEntry]:
        current = await self.get(entry_id)
        if current is None:
            return None
        vector = await embed_for_entry(entry_id, title, content, embedder)
        updated = current.with_content(title, content, vector)
        await self.put(updated)
        logger.info("knowledge.reembed id=%s dims=%d", entry_id, len(vector))
        return updated


class InMemoryKnowledgeRepository:
    """Process-local store for development and tests, optionally seeded from a JSON file."""

    def __init__(self, entries: Iterable[KnowledgeEntry] = ()) -> None:
        self._entries: Dict[str, KnowledgeEntry] = {e.id: e for e in entries}

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryKnowledgeRepository":
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        records = data.get("entries", []) if isinstance(data, dict) else data
        entries = [KnowledgeRecord.model_validate(r).to_entry() for r in records]
        logger.info("knowledge.seed path=%s count=%d", path, len(entries))
        return cls(entries)

    async def snapshot(
        self,
        language: Optional[str] = None,
        category: Optional[KnowledgeCategory] = None,
        include_inactive: bool = False,
    ) -> List[KnowledgeEntry]:
        return [
            e
            for e in self._entries.values()
            if _accepts(e, language, category, include_inactive)
        ]

    async def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        return self._entries.get(entry_id)

    async def put(self, entry: KnowledgeEntry) -> None:
        self._entries[entry.id] = entry

    async def reembed(
        self, entry_id: str, title: str, content: str, embedder: EmbeddingProvider
    ) -> Optional[KnowledgeEntry]:
        current = self._entries.get(entry_id)
        if current is None:
            return None
        vector = await embed_for_entry(entry_id, title, content, embedder)
        updated = current.with_content(title, content, vector)
        self._entries[entry_id] = updated
        return updated
