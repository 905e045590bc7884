"""
Vector Search - Semantic similarity search over content sections.

Features:
- Sentence-transformer embeddings (normalized) with a FAISS L2 index
- Section rows hydrated from the SQLite store
- Post-filters: role substring, tag/keyword overlap, context containment
  (locale aware), distance threshold, fuzzy section key
- Index building from stored sections
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np
from sentence_transformers import SentenceTransformer

from sectionlens.config.errors import UpstreamUnavailableError
from sectionlens.domains.retrieval.context import deep_get, iter_leaves
from sectionlens.domains.retrieval.models import ContentRecord, ScoredRecord, SemanticHit
from sectionlens.domains.retrieval.orchestrator import expand_section_keys
from sectionlens.domains.retrieval.reconciler import ResolvedFields, resolve_fields

if TYPE_CHECKING:
    from sectionlens.adapters.faiss import FAISSIndex
    from sectionlens.adapters.sqlite import SQLiteRepository

logger = logging.getLogger(__name__)

__all__ = ["VectorSearch"]

LOCALE_KEYS = ("locale", "language", "country")
EMBED_BATCH_SIZE = 32
MAX_EMBED_CHARS = 2000


def _lower(values: Iterable[str] | None) -> set[str]:
    return {v.strip().lower() for v in values or () if v and v.strip()}


def _same(wanted: Any, actual: Any) -> bool:
    if isinstance(wanted, str) and isinstance(actual, str):
        return wanted.strip().lower() == actual.strip().lower()
    return wanted == actual


def _contains(actual: Any, wanted: Any) -> bool:
    """Containment of a wanted context leaf in a record value."""
    if isinstance(actual, list):
        wanted_items = wanted if isinstance(wanted, list) else [wanted]
        return all(any(_same(w, a) for a in actual) for w in wanted_items)
    if isinstance(wanted, list):
        return all(_same(w, actual) for w in wanted)
    return _same(wanted, actual)


def matches_context(record: ContentRecord, resolved: ResolvedFields, context: dict[str, Any]) -> bool:
    """True unless a present record value contradicts a context leaf."""
    for path, wanted in iter_leaves(context):
        if path in LOCALE_KEYS:
            actual = getattr(resolved, path)
        else:
            actual = deep_get(record.context, path)
        if actual is None or wanted is None:
            continue
        if not _contains(actual, wanted):
            return False
    return True


def matches_section_key(record: ContentRecord, resolved: ResolvedFields, hint: str) -> bool:
    """Fuzzy section-key match against declared key, path, uri and usage path."""
    haystack = " ".join(
        value.lower()
        for value in (
            resolved.section_key,
            record.section_path,
            record.section_uri,
            deep_get(record.context, "usagePath"),
            deep_get(record.context, "envelope.usagePath"),
        )
        if isinstance(value, str)
    )
    return any(key in haystack for key in expand_section_keys(hint.lower()))


class VectorSearch:
    """
    Embedding similarity search returning section records by ascending distance.

    Example:
        >>> search = VectorSearch(faiss_index, repository)
        >>> hits = await search.search_similar("ipad pro headline", limit=10)
        >>> hits[0].distance <= hits[-1].distance
        True
    """

    def __init__(
        self,
        index: FAISSIndex,
        repository: SQLiteRepository,
        embedding_model: str = "all-MiniLM-L6-v2",
        candidate_multiplier: int = 5,
        max_candidates: int = 500,
    ) -> None:
        """
        Initialize vector search.

        Args:
            index: FAISS index holding one vector per section
            repository: Store used to hydrate section rows
            embedding_model: Sentence transformer model name
            candidate_multiplier: Over-fetch factor when post-filters apply
            max_candidates: Cap on FAISS candidates per query
        """
        self._index = index
        self._repository = repository
        self._model_name = embedding_model
        self._candidate_multiplier = candidate_multiplier
        self._max_candidates = max_candidates
        self._embedder: SentenceTransformer | None = None

    @property
    def embedder(self) -> SentenceTransformer:
        """Load the embedding model on first use."""
        if self._embedder is None:
            logger.info("Loading embedding model: %s", self._model_name)
            self._embedder = SentenceTransformer(self._model_name)
        return self._embedder

    async def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Embed texts; failures surface as UpstreamUnavailableError."""
        try:
            vectors = await asyncio.to_thread(
                self.embedder.encode,
                list(texts),
                normalize_embeddings=True,
                show_progress_bar=False,
            )
        except Exception as e:
            raise UpstreamUnavailableError(
                f"Embedding failed: {e}", details={"model": self._model_name}
            ) from e
        return np.asarray(vectors, dtype="float32")

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
        if not query_text or not query_text.strip() or limit <= 0 or self._index.size == 0:
            return []

        filtered = bool(role_filter or tags or keywords or context or section_key_hint)
        k = limit
        if filtered:
            k = min(limit * self._candidate_multiplier, self._max_candidates)

        [vector] = await self.embed([query_text])
        hits = await self._index.search(vector, k=k)
        if distance_threshold is not None:
            hits = [h for h in hits if h["distance"] <= distance_threshold]

        records = await self._repository.get_sections([h["metadata"]["id"] for h in hits])
        by_id = {record.id: record for record in records}

        wanted_tags = _lower(tags)
        wanted_keywords = _lower(keywords)
        role = role_filter.strip().lower() if role_filter else None

        results: list[ScoredRecord] = []
        for hit in hits:
            record = by_id.get(hit["metadata"]["id"])
            if record is None:
                continue
            if role and record.content_role and role not in record.content_role.lower():
                continue
            if wanted_tags and not wanted_tags & _lower(record.tags):
                continue
            if wanted_keywords and not wanted_keywords & _lower(record.keywords):
                continue
            if context or section_key_hint:
                resolved = resolve_fields(record)
                if context and not matches_context(record, resolved, context):
                    continue
                if section_key_hint and not matches_section_key(record, resolved, section_key_hint):
                    continue
            results.append(ScoredRecord(record=record, distance=hit["distance"]))
            if len(results) >= limit:
                break

        logger.debug(
            "Vector search: '%s' -> %d candidates, %d kept",
            query_text[:50],
            len(hits),
            len(results),
        )
        return results

    async def search(self, query: str, limit: int = 15) -> list[SemanticHit]:
        """Unfiltered semantic search for the plain search endpoint."""
        scored = await self.search_similar(query, limit=limit)
        return [SemanticHit.from_scored(s) for s in scored]

    async def index_sections(self, records: Sequence[ContentRecord]) -> int:
        """
        Embed sections and add them to the index.

        Returns:
            Number of vectors added
        """
        records = [r for r in records if r.cleansed_text.strip()]
        added = 0
        for start in range(0, len(records), EMBED_BATCH_SIZE):
            batch = records[start : start + EMBED_BATCH_SIZE]
            vectors = await self.embed([r.cleansed_text[:MAX_EMBED_CHARS] for r in batch])
            await self._index.add_vectors(vectors, [{"id": r.id} for r in batch])
            added += len(batch)
            logger.debug("Embedded %d/%d sections", added, len(records))

        logger.info("Indexed %d sections", added)
        return added
