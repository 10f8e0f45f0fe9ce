"""
News RAG FastAPI Application

HTTP surface over the chat service:
- POST   /api/session              allocate a session id
- POST   /api/chat                 ask a question within a session
- GET    /api/history/{sessionId}  read a session's turns
- DELETE /api/session/{sessionId}  forget a session
- GET    /api/health               liveness and component status

Run with:
    python -m news_rag.cli serve
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..errors import ClientInputError, GenerationFailure
from ..main_pipeline import NewsQuerySystem
from ..query.rag_service import RAGService
from .schemas import (
    ChatRequest,
    ChatResponseSchema,
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    MessageResponse,
    SessionResponse,
    SourceSchema,
    TurnSchema,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def get_system(request: Request) -> NewsQuerySystem:
    return request.app.state.system


def get_rag_service(request: Request) -> RAGService:
    return request.app.state.system.rag_service


@router.post("/session", response_model=SessionResponse)
async def create_session(rag: RAGService = Depends(get_rag_service)):
    """Allocate a new session id. Nothing is stored until the first message."""
    return SessionResponse(session_id=rag.create_session())


@router.post(
    "/chat",
    response_model=ChatResponseSchema,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def chat(payload: ChatRequest, rag: RAGService = Depends(get_rag_service)):
    """Answer a question using retrieved news passages and the session's history."""
    response = await rag.chat(payload.session_id, payload.message)
    return ChatResponseSchema(
        answer=response.answer,
        sources=[SourceSchema(**source.to_dict()) for source in response.sources]
    )


@router.get("/history/{session_id}", response_model=HistoryResponse)
async def get_history(session_id: str, rag: RAGService = Depends(get_rag_service)):
    """Return the stored turns; empty if absent, expired or unavailable."""
    loaded = await rag.get_history(session_id)
    return HistoryResponse(
        history=[TurnSchema(**turn.to_dict()) for turn in loaded.value]
    )


@router.delete("/session/{session_id}", response_model=MessageResponse)
async def clear_session(session_id: str, rag: RAGService = Depends(get_rag_service)):
    """Forget a session. Always succeeds, even for unknown ids."""
    await rag.clear_session(session_id)
    return MessageResponse(message="Session cleared")


@router.get("/health", response_model=HealthResponse)
async def health(system: NewsQuerySystem = Depends(get_system)):
    return HealthResponse(
        status=system.state.value,
        documents=system.vector_store.count(),
        session_store='redis' if system.session_store.available else 'fallback'
    )


async def _startup_ingest(system: NewsQuerySystem, path: str) -> None:
    try:
        results = await system.ingest_file(path)
        logger.info(
            f"Startup ingestion finished: {results['ingested']}/{results['total']} articles indexed"
        )
    except asyncio.CancelledError:
        logger.info("Startup ingestion cancelled")
        raise
    except Exception as e:
        logger.error(f"Initialization failed: {e}")


def create_app(
    system: Optional[NewsQuerySystem] = None,
    seed_articles_path: Optional[str] = None
) -> FastAPI:
    """
    Build the FastAPI application around a system instance.

    Args:
        system: System to serve (default: built from global config)
        seed_articles_path: JSON articles file ingested in the background at
            startup (default: ``SEED_ARTICLES_PATH`` from config)
    """
    system = system or NewsQuerySystem()
    if seed_articles_path is None:
        seed_articles_path = system.config.seed_articles_path

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await system.start()

        ingest_task = None
        if seed_articles_path:
            ingest_task = asyncio.create_task(_startup_ingest(system, seed_articles_path))

        yield

        if ingest_task is not None and not ingest_task.done():
            ingest_task.cancel()
            try:
                await ingest_task
            except asyncio.CancelledError:
                pass
        await system.close()

    app = FastAPI(
        title="News RAG API",
        description="Conversational question answering over recently ingested news articles.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClientInputError)
    async def client_input_error_handler(request: Request, exc: ClientInputError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Missing sessionId or message"})

    @app.exception_handler(GenerationFailure)
    async def generation_failure_handler(request: Request, exc: GenerationFailure):
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(router)
    return app
