# model/knowledge.py
from pydantic import BaseModel, Field
from core.entities import KnowledgeCategory, KnowledgeEntry


class KnowledgeRecord(BaseModel):
    """Stored shape of a knowledge entry (camelCase, as the admin tooling writes it)."""

    id: str
    title: str
    content: str
    category: KnowledgeCategory | None = None
    tags: list[str] = Field(default_factory=list)
    language: str = "en"
    embedding: list[float] = Field(default_factory=list)
    isActive: bool = True

    def to_entry(self) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=self.id,
            title=self.title,
            content=self.content,
            category=self.category,
            tags=frozenset(self.tags),
            language=self.language,
            embedding=tuple(self.embedding),
            is_active=self.isActive,
        )

    @classmethod
    def from_entry(cls, entry: KnowledgeEntry) -> "KnowledgeRecord":
        return cls(
            id=entry.id,
            title=entry.title,
            content=entry.content,
            category=entry.category,
            tags=sorted(entry.tags),
            language=entry.language,
            embedding=list(entry.embedding),
            isActive=entry.is_active,
        )
