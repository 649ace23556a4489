"""
FastAPI Application - ChatBuilder

Entry point for the chatbot REST API. The service graph is built once in the
lifespan handler (or passed in by tests) and hung off app.state.
"""

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .dependencies import Services, build_services
from .errors import register_exception_handlers
from .schemas import HealthResponse
from .. import __version__

logger = logging.getLogger(__name__)

VERSION = __version__
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _check_database(services: Services) -> str:
    if services.engine is None:
        return "disconnected"
    try:
        with services.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        return "disconnected"
    return "connected"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Build services on startup unless provided; dispose the engine on shutdown."""
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    services: Services = app.state.services

    logger.info(f"ChatBuilder API v{VERSION} starting")
    logger.info(f"Database: {_check_database(services)}")
    if services.llm_client.api_key:
        logger.info(f"LLM: {services.llm_client.build_model_string()}")
    else:
        logger.warning("LLM API key not configured; chat requests will fail")
    logger.info(f"Vector index: {services.index.count()} vectors from {services.index.storage_path}")

    yield

    logger.info("ChatBuilder API shutting down")
    if services.engine is not None:
        services.engine.dispose()


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Prebuilt service graph (built from the environment on
            startup if omitted)
    """
    app = FastAPI(
        title="ChatBuilder API",
        description="""
        Retrieval-augmented chatbot over a company's knowledge base.

        - Upload text documents or ingest crawled pages
        - Streaming answers with citations (Server-Sent Events)
        - Stored conversations per visitor session
        """,
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    # The chat widget is embedded on customer sites
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        started = time.perf_counter()
        logger.info(f"[{request_id}] → {request.method} {request.url.path}")

        response = await call_next(request)

        # Streamed responses are timed to the first byte
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"[{request_id}] ← {response.status_code} ({elapsed_ms:.0f}ms)")
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        return {"name": "ChatBuilder API", "version": VERSION, "docs": "/docs", "chat": "/api/v1/chat"}

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """
        Liveness plus dependency status.

        Always reports healthy while the process serves requests; database and
        LLM fields show what is degraded.
        """
        svc: Services = request.app.state.services
        return HealthResponse(
            status="healthy",
            database=_check_database(svc),
            llm="configured" if svc.llm_client.api_key else "not_configured",
            index_vectors=svc.index.count(),
            version=VERSION,
        )

    from .routers import chat, conversations, documents, index

    app.include_router(chat.router, prefix="/api/v1", tags=["Chat"])
    app.include_router(documents.router, prefix="/api/v1", tags=["Documents"])
    app.include_router(conversations.router, prefix="/api/v1", tags=["Conversations"])
    app.include_router(index.router, prefix="/api/v1", tags=["Index"])

    return app


configure_logging(os.getenv("LOG_LEVEL", "INFO"))
app = create_app()
