# controller/embedding_controller.py
import asyncio
import logging
from fastapi import APIRouter
from core.embedding_model import embed_text
from model.api import EmbeddingRequest, EmbeddingResponse
from util.constants import InternalURIs
from util.enums import ErrorMessage
from util.errors import AppError

logger = logging.getLogger(__name__)

# Not rate limited: the retrieval path calls this on every cache miss.
embedding_router = APIRouter()


@embedding_router.post(InternalURIs.EMBEDDINGS, response_model=EmbeddingResponse)
async def create_embedding(payload: EmbeddingRequest) -> EmbeddingResponse:
    text = payload.text.strip()
    if not text:
        raise AppError.of(ErrorMessage.EMPTY_TEXT)
    vector, fallback = await asyncio.to_thread(embed_text, text)
    if fallback:
        logger.warning("embed.endpoint.fallback dims=%d", len(vector))
    return EmbeddingResponse(embedding=vector, dimensions=len(vector), fallback=fallback)
