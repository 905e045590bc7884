"""
Retrieval Orchestrator - Concurrent semantic and metadata retrieval.

Features:
- Semantic and metadata lookups issued together (asyncio.gather) and joined
- Related section-key expansion (-items suffix, trailing qualifiers)
- Section discovery through a page id when both sources come back empty
- Collaborator failures degrade to zero rows from that source
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .context import deep_get
from .contracts import MetadataSearch, SimilaritySearch
from .criteria import SECTION_KEY_PATTERN, normalize_token
from .models import ContentRecord, RetrievalBatch, ScoredRecord, SearchCriteria

logger = logging.getLogger(__name__)

__all__ = ["RetrievalOrchestrator", "discover_section_keys", "expand_section_keys"]

ITEMS_SUFFIX = "-items"
SECTION_MARKER = "-section"


def expand_section_keys(section_key: str) -> list[str]:
    """
    Related keys to try for a section key, the key itself first.

    Example:
        >>> expand_section_keys("accordion-section-hero")
        ['accordion-section-hero', 'accordion-section-hero-items', 'accordion-section', 'accordion-section-items']
    """
    keys: list[str] = []

    def add(key: str) -> None:
        if key and key not in keys:
            keys.append(key)

    def add_with_items(key: str) -> None:
        add(key)
        if key.endswith(ITEMS_SUFFIX):
            add(key[: -len(ITEMS_SUFFIX)])
        else:
            add(key + ITEMS_SUFFIX)

    add_with_items(section_key)
    marker = section_key.find(SECTION_MARKER)
    if marker > 0:
        base = section_key[: marker + len(SECTION_MARKER)]
        if base != section_key:
            add_with_items(base)
    return keys


def discover_section_keys(records: Iterable[ContentRecord]) -> list[str]:
    """Candidate section keys declared by, or visible in the paths of, records."""
    keys: list[str] = []
    for record in records:
        candidates = [
            deep_get(record.context, "facets.sectionKey"),
            deep_get(record.context, "envelope.sectionKey"),
        ]
        for segment in record.section_path.split("/"):
            match = SECTION_KEY_PATTERN.search(segment)
            if match:
                candidates.append(match.group(0))
        for candidate in candidates:
            key = normalize_token(candidate) if isinstance(candidate, str) else None
            if key and key not in keys:
                keys.append(key)
    return keys


class RetrievalOrchestrator:
    """
    Issue both retrieval calls for one set of criteria.

    Example:
        >>> orchestrator = RetrievalOrchestrator(vector_search, repository)
        >>> batch = await orchestrator.retrieve(criteria)
    """

    def __init__(
        self,
        similarity: SimilaritySearch | None,
        metadata: MetadataSearch,
        fetch_floor: int = 50,
        fetch_cap: int = 200,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            similarity: Semantic search collaborator (None disables the path)
            metadata: Metadata search collaborator
            fetch_floor: Minimum rows requested from metadata lookups
            fetch_cap: Maximum rows requested from metadata lookups
        """
        self._similarity = similarity
        self._metadata = metadata
        self._fetch_floor = fetch_floor
        self._fetch_cap = fetch_cap

    def metadata_fetch_limit(self, limit: int) -> int:
        return min(max(limit * 2, self._fetch_floor), self._fetch_cap)

    async def retrieve(self, criteria: SearchCriteria) -> RetrievalBatch:
        section_keys = expand_section_keys(criteria.section_key) if criteria.section_key else []

        semantic, metadata = await asyncio.gather(
            self._semantic(criteria),
            self._metadata_rows(criteria, section_keys),
        )
        batch = RetrievalBatch(semantic=semantic, metadata=metadata, section_keys=section_keys)

        if batch.is_empty and criteria.page_id:
            batch = await self._discover(criteria, batch)

        logger.info(
            "Retrieval: key=%s -> semantic=%d, metadata=%d%s",
            criteria.section_key,
            len(batch.semantic),
            len(batch.metadata),
            " (discovered)" if batch.discovered else "",
        )
        return batch

    async def _semantic(self, criteria: SearchCriteria) -> list[ScoredRecord]:
        if self._similarity is None:
            return []
        query_text = (
            f"{criteria.section_key} {criteria.message}" if criteria.section_key else criteria.message
        )
        try:
            return await self._similarity.search_similar(
                query_text,
                role_filter=criteria.role,
                limit=criteria.limit,
                tags=list(criteria.tags) or None,
                keywords=list(criteria.keywords) or None,
                context=criteria.filter_context() or None,
                distance_threshold=criteria.distance_threshold,
                section_key_hint=criteria.section_key,
            )
        except Exception as e:
            logger.warning("Semantic retrieval failed, continuing without it: %s", e)
            return []

    async def _metadata_rows(
        self, criteria: SearchCriteria, section_keys: list[str]
    ) -> list[ContentRecord]:
        limit = self.metadata_fetch_limit(criteria.limit)
        try:
            if section_keys:
                return await self._rows_for_keys(section_keys, limit)
            return await self._metadata.find_by_metadata_full_text(criteria.message, limit)
        except Exception as e:
            logger.warning("Metadata retrieval failed, continuing without it: %s", e)
            return []

    async def _rows_for_keys(self, section_keys: list[str], limit: int) -> list[ContentRecord]:
        rows: dict[str, ContentRecord] = {}
        for key in section_keys:
            for record in await self._metadata.find_by_section_key(key, limit):
                rows.setdefault(record.id, record)
            for record in await self._metadata.find_by_context_section_key(key, limit):
                rows.setdefault(record.id, record)
        return list(rows.values())

    async def _discover(self, criteria: SearchCriteria, batch: RetrievalBatch) -> RetrievalBatch:
        assert criteria.page_id is not None
        limit = self.metadata_fetch_limit(criteria.limit)
        try:
            page_rows = await self._metadata.find_by_page_id(criteria.page_id, limit)
        except Exception as e:
            logger.warning("Page lookup for section discovery failed: %s", e)
            return batch

        candidates = [key for key in discover_section_keys(page_rows) if key not in batch.section_keys]
        if not candidates:
            logger.debug("No section keys discovered for page %s", criteria.page_id)
            return batch

        logger.debug("Discovered section keys for page %s: %s", criteria.page_id, candidates)
        rows: dict[str, ContentRecord] = {}
        for key in candidates:
            try:
                found = await self._rows_for_keys(expand_section_keys(key), limit)
            except Exception as e:
                logger.warning("Metadata retry for discovered key %s failed: %s", key, e)
                continue
            for record in found:
                rows.setdefault(record.id, record)
            if len(rows) >= limit:
                break

        return RetrievalBatch(
            semantic=batch.semantic,
            metadata=list(rows.values()),
            section_keys=[*batch.section_keys, *candidates],
            discovered=True,
        )
