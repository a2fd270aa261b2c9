# model/api.py
from pydantic import BaseModel, Field
from typing import Literal
from core.entities import (
    GeneratedAnswer,
    KnowledgeCategory,
    ScoredResult,
    SearchStats,
)


class RetrieveRequest(BaseModel):
    query: str = Field(min_length=1)
    language: str = "en"
    topK: int | None = Field(default=None, ge=1, le=50)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    category: KnowledgeCategory | None = None
    useVector: bool = True
    useKeyword: bool = True


class ScoredResultModel(BaseModel):
    id: str
    title: str
    content: str
    category: KnowledgeCategory | None = None
    tags: list[str] = []
    vectorScore: float
    keywordScore: float
    hybridScore: float
    matchedKeywords: list[str] = []
    searchType: Literal["vector", "keyword", "hybrid"]

    @classmethod
    def from_result(cls, r: ScoredResult) -> "ScoredResultModel":
        return cls(
            id=r.entry.id,
            title=r.entry.title,
            content=r.entry.content,
            category=r.entry.category,
            tags=sorted(r.entry.tags),
            vectorScore=r.vector_score,
            keywordScore=r.keyword_score,
            hybridScore=r.hybrid_score,
            matchedKeywords=sorted(r.matched_keywords),
            searchType=r.provenance.value,
        )


class SearchStatsModel(BaseModel):
    total: int
    vector: int
    keyword: int
    hybrid: int
    avgHybridScore: float
    avgVectorScore: float
    avgKeywordScore: float
    categories: list[str]

    @classmethod
    def from_stats(cls, s: SearchStats) -> "SearchStatsModel":
        return cls(
            total=s.total,
            vector=s.vector,
            keyword=s.keyword,
            hybrid=s.hybrid,
            avgHybridScore=s.avg_hybrid_score,
            avgVectorScore=s.avg_vector_score,
            avgKeywordScore=s.avg_keyword_score,
            categories=s.categories,
        )


class RetrieveResponse(BaseModel):
    results: list[ScoredResultModel]
    stats: SearchStatsModel


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    conversationId: str | None = None
    language: str = "en"
    history: list[HistoryMessage] = []


class SourceModel(BaseModel):
    id: str
    title: str
    similarity: float


class ChatResponse(BaseModel):
    response: str
    responseTime: int
    sources: list[SourceModel] = []
    suggestions: list[str] = []
    degraded: bool = False

    @classmethod
    def from_answer(cls, a: GeneratedAnswer) -> "ChatResponse":
        return cls(
            response=a.text,
            responseTime=a.response_time_ms,
            sources=[SourceModel(id=s.id, title=s.title, similarity=s.similarity) for s in a.sources],
            suggestions=list(a.suggestions),
            degraded=a.degraded,
        )


class StreamEvent(BaseModel):
    type: Literal["reveal", "final", "error", "done"]
    payload: dict


class EmbeddingRequest(BaseModel):
    text: str


class EmbeddingResponse(BaseModel):
    embedding: list[float]
    dimensions: int
    fallback: bool = False


class ReembedRequest(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)


class ReembedResponse(BaseModel):
    id: str
    dimensions: int


class CacheClearResponse(BaseModel):
    ok: bool
    cleared: dict
