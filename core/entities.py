# core/entities.py
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


class KnowledgeCategory(str, Enum):
    PERSONAL = "personal"
    PERSONALITY = "personality"
    PROJECTS = "projects"
    SKILLS = "skills"
    EXPERIENCE = "experience"
    EDUCATION = "education"
    CERTIFICATIONS = "certifications"
    CONTENT = "content"
    CONTACT = "contact"
    OTHER = "other"


class Provenance(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class KnowledgeEntry:
    """
    One curated piece of knowledge. Immutable; `with_content` is the only way
    to derive an edited entry, and it always carries the new embedding with it.
    """

    id: str
    title: str
    content: str
    category: Optional[KnowledgeCategory]
    tags: FrozenSet[str] = frozenset()
    language: str = "en"
    embedding: Tuple[float, ...] = ()
    is_active: bool = True

    @property
    def text(self) -> str:
        return f"{self.title} {self.content}"

    def with_content(
        self, title: str, content: str, embedding: List[float]
    ) -> "KnowledgeEntry":
        return replace(
            self, title=title, content=content, embedding=tuple(embedding)
        )


@dataclass
class ScoredResult:
    entry: KnowledgeEntry  # shared reference, never copied
    vector_score: float = 0.0
    keyword_score: float = 0.0
    matched_keywords: FrozenSet[str] = frozenset()
    hybrid_score: float = 0.0
    provenance: Provenance = Provenance.VECTOR

    @property
    def id(self) -> str:
        return self.entry.id


@dataclass(frozen=True)
class ReasoningStep:
    icon: str
    text: str


@dataclass(frozen=True)
class ChatTurn:
    role: str  # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class SourceRef:
    id: str
    title: str
    similarity: float


@dataclass(frozen=True)
class GeneratedAnswer:
    text: str
    sources: Tuple[SourceRef, ...] = ()
    suggestions: Tuple[str, ...] = ()
    response_time_ms: int = 0
    degraded: bool = False


@dataclass
class SearchStats:
    total: int = 0
    vector: int = 0
    keyword: int = 0
    hybrid: int = 0
    avg_hybrid_score: float = 0.0
    avg_vector_score: float = 0.0
    avg_keyword_score: float = 0.0
    categories: List[str] = field(default_factory=list)
