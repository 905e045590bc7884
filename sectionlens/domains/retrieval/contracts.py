"""
Retrieval Contracts - Interfaces for the collaborators of the retrieval domain.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .models import ContentRecord, QueryHint, ScoredRecord


@runtime_checkable
class SimilaritySearch(Protocol):
    """Contract for embedding + vector similarity search."""

    async def search_similar(
        self,
        query_text: str,
        role_filter: str | None = None,
        limit: int = 15,
        tags: list[str] | None = None,
        keywords: list[str] | None = None,
        context: dict[str, Any] | None = None,
        distance_threshold: float | None = None,
        section_key_hint: str | None = None,
    ) -> list[ScoredRecord]:
        """Return records ordered by ascending distance. May raise UpstreamUnavailableError."""
        ...


@runtime_checkable
class MetadataSearch(Protocol):
    """Contract for metadata/keyword lookups. All results are most-recent first."""

    async def find_by_section_key(self, section_key: str, limit: int) -> list[ContentRecord]:
        ...

    async def find_by_context_section_key(
        self, section_key: str, limit: int
    ) -> list[ContentRecord]:
        ...

    async def find_by_metadata_full_text(self, query: str, limit: int) -> list[ContentRecord]:
        """Full-text query over metadata fields only (never body text)."""
        ...

    async def find_by_page_id(self, page_id: str, limit: int) -> list[ContentRecord]:
        ...


@runtime_checkable
class QueryInterpreter(Protocol):
    """Contract for optional, advisory query interpretation."""

    async def interpret(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> QueryHint | None:
        """Return a structured hint, or None when nothing useful was found."""
        ...
