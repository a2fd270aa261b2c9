# core/vector_index.py
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence
import numpy as np
from core.entities import KnowledgeCategory, KnowledgeEntry, Provenance, ScoredResult
from util.errors import InvalidEntryError

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|). Returns 0.0 for mismatched lengths or a
    zero-magnitude operand.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


@dataclass(frozen=True)
class VectorFilters:
    language: Optional[str] = None
    category: Optional[KnowledgeCategory] = None
    include_inactive: bool = False

    def accepts(self, entry: KnowledgeEntry) -> bool:
        if not self.include_inactive and not entry.is_active:
            return False
        if self.language and entry.language != self.language:
            return False
        if self.category is not None and entry.category != self.category:
            return False
        return True


class VectorIndex:
    """
    Exhaustive cosine search over a small corpus. Dimensionality is fixed by
    the constructor or by the first entry added.
    """

    def __init__(self, dimensions: Optional[int] = None) -> None:
        self._dimensions = dimensions
        self._entries: List[KnowledgeEntry] = []

    @property
    def dimensions(self) -> Optional[int]:
        return self._dimensions

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, entry: KnowledgeEntry) -> None:
        size = len(entry.embedding)
        if entry.is_active and size == 0:
            raise InvalidEntryError(f"entry {entry.id} has no embedding")
        if size:
            if self._dimensions is None:
                self._dimensions = size
            elif size != self._dimensions:
                raise InvalidEntryError(
                    f"entry {entry.id} has {size} dims, index expects {self._dimensions}"
                )
        self._entries.append(entry)

    @classmethod
    def from_entries(
        cls, entries: Iterable[KnowledgeEntry], dimensions: Optional[int] = None
    ) -> "VectorIndex":
        index = cls(dimensions)
        for entry in entries:
            try:
                index.add(entry)
            except InvalidEntryError as e:
                logger.warning("index.entry.skip id=%s reason=%s", entry.id, e)
        return index

    def query(
        self,
        vector: Sequence[float],
        filters: VectorFilters = VectorFilters(),
        threshold: float = 0.0,
        top_k: int = 5,
    ) -> List[ScoredResult]:
        out: List[ScoredResult] = []
        for entry in self._entries:
            if not filters.accepts(entry):
                continue
            sim = cosine_similarity(vector, entry.embedding)
            if sim < threshold:
                continue
            out.append(
                ScoredResult(
                    entry=entry,
                    vector_score=sim,
                    provenance=Provenance.VECTOR,
                )
            )
        # sorted() is stable, ties keep corpus order
        out = sorted(out, key=lambda r: r.vector_score, reverse=True)
        return out[: max(0, top_k)]
