# controller/chat_controller.py
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from core.entities import ChatTurn
from model.api import ChatRequest, ChatResponse
from service.chat_service import ChatService
from util.constants import InternalURIs
from util.enums import ErrorMessage
from util.errors import AppError
from controller.controller_dependencies import get_chat_service

chat_router = APIRouter(
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
)


def _history(payload: ChatRequest) -> list[ChatTurn]:
    return [ChatTurn(role=m.role, content=m.content) for m in payload.history]


@chat_router.post(InternalURIs.CHAT, response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    if not payload.message.strip():
        raise AppError.of(ErrorMessage.EMPTY_MESSAGE)
    answer = await service.chat(payload.message, _history(payload), payload.language)
    return ChatResponse.from_answer(answer)


@chat_router.post(InternalURIs.CHAT_STREAM)
async def chat_stream(
    payload: ChatRequest,
    service: ChatService = Depends(get_chat_service),
):
    if not payload.message.strip():
        raise AppError.of(ErrorMessage.EMPTY_MESSAGE)
    generator = service.stream_chat(
        payload.message,
        conversation_id=payload.conversationId,
        history=_history(payload),
        language=payload.language,
    )
    return StreamingResponse(generator, media_type="application/x-ndjson")
