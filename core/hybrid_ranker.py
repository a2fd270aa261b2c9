# core/hybrid_ranker.py
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List
from config.settings import settings
from core.entities import Provenance, ScoredResult, SearchStats


@dataclass(frozen=True)
class RankingWeights:
    vector_weight: float = settings.VECTOR_WEIGHT
    keyword_weight: float = settings.KEYWORD_WEIGHT
    category_bonus: float = settings.CATEGORY_BONUS


def _provenance(vector_score: float, keyword_score: float) -> Provenance:
    if vector_score > 0 and keyword_score > 0:
        return Provenance.HYBRID
    if keyword_score > 0:
        return Provenance.KEYWORD
    return Provenance.VECTOR


def merge(
    vector_results: Iterable[ScoredResult],
    keyword_results: Iterable[ScoredResult],
    weights: RankingWeights = RankingWeights(),
) -> List[ScoredResult]:
    """
    Union both result lists by entry id and blend their scores.

    hybrid = vector * vector_weight + keyword * keyword_weight
             (+ category_bonus when the entry is categorized)

    Returns every merged entry sorted by hybrid score; callers truncate.
    """
    by_id: Dict[str, ScoredResult] = {}
    for r in vector_results:
        by_id[r.id] = replace(r, keyword_score=0.0, matched_keywords=frozenset())

    for r in keyword_results:
        seen = by_id.get(r.id)
        if seen is None:
            by_id[r.id] = replace(r, vector_score=0.0)
        else:
            seen.keyword_score = r.keyword_score
            seen.matched_keywords = r.matched_keywords

    merged: List[ScoredResult] = []
    for r in by_id.values():
        bonus = weights.category_bonus if r.entry.category is not None else 0.0
        r.hybrid_score = (
            r.vector_score * weights.vector_weight
            + r.keyword_score * weights.keyword_weight
            + bonus
        )
        r.provenance = _provenance(r.vector_score, r.keyword_score)
        merged.append(r)

    return sorted(merged, key=lambda r: r.hybrid_score, reverse=True)


def search_stats(results: List[ScoredResult]) -> SearchStats:
    if not results:
        return SearchStats()
    n = len(results)
    categories: List[str] = []
    for r in results:
        cat = r.entry.category
        if cat is not None and cat.value not in categories:
            categories.append(cat.value)
    return SearchStats(
        total=n,
        vector=sum(1 for r in results if r.provenance == Provenance.VECTOR),
        keyword=sum(1 for r in results if r.provenance == Provenance.KEYWORD),
        hybrid=sum(1 for r in results if r.provenance == Provenance.HYBRID),
        avg_hybrid_score=sum(r.hybrid_score for r in results) / n,
        avg_vector_score=sum(r.vector_score for r in results) / n,
        avg_keyword_score=sum(r.keyword_score for r in results) / n,
        categories=categories,
    )
