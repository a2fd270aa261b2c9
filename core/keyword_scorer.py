# core/keyword_scorer.py
import math
import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List
from config.settings import settings
from core.entities import KnowledgeEntry, Provenance, ScoredResult

_NON_WORD = re.compile(r"[^\w\s]")

STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "what", "where", "when", "who", "why", "how", "which",
        "the", "is", "are", "was", "were", "be", "been",
        "have", "has", "had", "do", "does", "did",
        "a", "an", "and", "or", "but",
        "in", "on", "at", "to", "for", "of", "with", "by", "from",
        "this", "that", "these", "those", "into", "about",
    }
)

# Casual phrasing ("tell me about ...") that should not drive term matching.
CONVERSATIONAL_STOP_WORDS: FrozenSet[str] = STOP_WORDS | frozenset(
    {
        "tell", "me", "about", "show", "give", "please", "know",
        "can", "could", "would", "you", "your", "his", "her", "their",
        "any", "some", "more", "like", "want", "list",
    }
)


def tokenize(text: str) -> List[str]:
    """Lowercase, strip punctuation, split, drop short tokens and stop words."""
    cleaned = _NON_WORD.sub(" ", (text or "").lower())
    return [t for t in cleaned.split() if len(t) > 2 and t not in STOP_WORDS]


def extract_keywords(query: str) -> List[str]:
    """Query tokens minus the conversational set, de-duplicated in order."""
    seen: List[str] = []
    for token in tokenize(query):
        if token in CONVERSATIONAL_STOP_WORDS or token in seen:
            continue
        seen.append(token)
    return seen


@dataclass(frozen=True)
class BM25Params:
    k1: float = settings.BM25_K1
    b: float = settings.BM25_B
    avg_doc_length: float = settings.BM25_AVG_DOC_LENGTH


def bm25_score(
    keywords: Iterable[str], doc_tokens: List[str], doc_length: int, params: BM25Params
) -> float:
    """
    BM25-style accumulation with a tf-only idf, ln(1 + 1/(tf+1)).
    There is no corpus-wide document frequency; scores stay comparable
    with the existing knowledge-base tuning.
    """
    score = 0.0
    norm = params.k1 * (1 - params.b + params.b * (doc_length / params.avg_doc_length))
    for kw in keywords:
        tf = doc_tokens.count(kw)
        if tf == 0:
            continue
        idf = math.log(1 + 1 / (tf + 1))
        score += idf * (tf * (params.k1 + 1)) / (tf + norm)
    return score


class KeywordScorer:
    def __init__(self, params: BM25Params = BM25Params()) -> None:
        self._params = params

    def score(
        self, query: str, corpus: Iterable[KnowledgeEntry], min_score: float = 0.0
    ) -> List[ScoredResult]:
        keywords = extract_keywords(query)
        if not keywords:
            return []

        out: List[ScoredResult] = []
        for entry in corpus:
            text = entry.text
            tokens = tokenize(text)
            matched = frozenset(kw for kw in keywords if kw in tokens)
            if not matched:
                continue
            s = bm25_score(keywords, tokens, len(text), self._params)
            if s <= min_score:
                continue
            out.append(
                ScoredResult(
                    entry=entry,
                    keyword_score=s,
                    matched_keywords=matched,
                    provenance=Provenance.KEYWORD,
                )
            )
        return sorted(out, key=lambda r: r.keyword_score, reverse=True)
