"""
FastAPI Main Application - HTTP entry point.

Run with: uvicorn sectionlens.interfaces.api.main:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sectionlens import __version__
from sectionlens.config import get_settings

from .deps import cleanup_services, init_services
from .middleware import ErrorHandlerMiddleware, QueryTraceMiddleware, RateLimitMiddleware
from .routes import chatbot, health, search

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting SectionLens API...")
    logger.info("  Database: %s", settings.db_path)
    logger.info("  Vector index: %s", settings.vector_index_path)
    logger.info(
        "  Interpretation: %s",
        settings.ollama_model if settings.interpretation_enabled else "disabled",
    )

    await init_services()
    logger.info("  Services initialized")

    yield

    logger.info("Shutting down SectionLens API...")
    await cleanup_services()


def create_app() -> FastAPI:
    """Create FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="SectionLens API",
        description="Dual-source retrieval and reconciliation over cleansed content sections",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters - first added = innermost)
    app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.api_rate_limit_rpm)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(QueryTraceMiddleware)

    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_origin_regex=r"http://localhost:\d+" if settings.api_debug else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Relaxation-Stage", "X-Result-Count"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(chatbot.router, prefix="/api/chatbot", tags=["Chatbot"])
    app.include_router(search.router, prefix="/api", tags=["Search"])

    return app


# Create app instance
app = create_app()
