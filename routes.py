# routes.py
from fastapi import FastAPI
from controller.chat_controller import chat_router
from controller.embedding_controller import embedding_router
from controller.retrieval_controller import retrieval_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(embedding_router)
    app.include_router(retrieval_router)
    app.include_router(chat_router)
