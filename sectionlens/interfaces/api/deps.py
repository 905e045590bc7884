"""
API Dependencies - Dependency injection for FastAPI routes.

Provides singleton instances of the store, the vector index and the
retrieval services.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from sectionlens.adapters.faiss import FAISSIndex
from sectionlens.adapters.llm import LLMQueryInterpreter, LLMService
from sectionlens.adapters.sqlite import SQLiteRepository
from sectionlens.adapters.vector import VectorSearch
from sectionlens.config import get_settings
from sectionlens.domains.retrieval import (
    ContentQueryService,
    CriteriaBuilder,
    RefinementService,
    ResultReconciler,
    RetrievalOrchestrator,
)

logger = logging.getLogger(__name__)


@lru_cache
def get_sqlite_repository() -> SQLiteRepository:
    """Get SQLite repository singleton."""
    settings = get_settings()
    return SQLiteRepository(settings.db_path)


@lru_cache
def get_faiss_index() -> FAISSIndex:
    """Get FAISS index singleton."""
    settings = get_settings()
    return FAISSIndex(dimension=settings.embedding_dimension)


@lru_cache
def get_vector_search() -> VectorSearch:
    """Get vector search singleton."""
    settings = get_settings()
    return VectorSearch(
        index=get_faiss_index(),
        repository=get_sqlite_repository(),
        embedding_model=settings.embedding_model,
    )


@lru_cache
def get_query_interpreter() -> LLMQueryInterpreter | None:
    """Get the LLM query interpreter, or None when interpretation is disabled."""
    settings = get_settings()
    if not settings.interpretation_enabled:
        return None
    return LLMQueryInterpreter(LLMService())


@lru_cache
def get_query_service() -> ContentQueryService:
    """Get content query service singleton."""
    settings = get_settings()
    similarity = get_vector_search()
    metadata = get_sqlite_repository()
    return ContentQueryService(
        similarity=similarity,
        metadata=metadata,
        interpreter=get_query_interpreter(),
        builder=CriteriaBuilder(
            default_limit=settings.search_default_limit,
            max_limit=settings.search_max_limit,
            distance_threshold=settings.semantic_distance_threshold,
        ),
        orchestrator=RetrievalOrchestrator(
            similarity,
            metadata,
            fetch_floor=settings.metadata_fetch_floor,
            fetch_cap=settings.search_max_limit,
        ),
        reconciler=ResultReconciler(default_tenant=settings.default_tenant),
    )


@lru_cache
def get_refinement_service() -> RefinementService:
    """Get refinement chip service singleton."""
    return RefinementService(get_vector_search())


async def init_services() -> None:
    """
    Initialize services on startup.

    This should be called from the FastAPI lifespan handler.
    """
    settings = get_settings()

    repo = get_sqlite_repository()
    await repo.initialize()

    index = get_faiss_index()
    if FAISSIndex.exists(settings.vector_index_path):
        await index.load(settings.vector_index_path)
    else:
        logger.warning(
            "No vector index at %s; semantic search returns nothing until `sectionlens load`",
            settings.vector_index_path,
        )
        await index.initialize()


async def cleanup_services() -> None:
    """Cleanup services on shutdown."""
    repo = get_sqlite_repository()
    await repo.close()
