"""
Refinement Service - Suggest refinement chips from semantically similar content.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator

from .context import deep_get
from .contracts import SimilaritySearch
from .models import ContentRecord, RefinementChip

logger = logging.getLogger(__name__)

__all__ = ["RefinementService", "similarity_from_distance"]

REFINEMENT_THRESHOLD = 0.9
REFINEMENT_CANDIDATES = 20
MAX_CHIPS = 10

CONTEXT_CHIP_PATHS = (
    "facets.sectionKey",
    "facets.eventType",
    "envelope.sectionName",
    "envelope.locale",
    "envelope.country",
)

ChipKey = tuple[str, str]


def similarity_from_distance(distance: float | None) -> float:
    """Map an L2 distance onto (0, 1]; closer rows score higher."""
    if distance is None or distance < 0:
        return 0.0
    return 1.0 / (1.0 + distance)


def _chips_of(record: ContentRecord) -> Iterator[ChipKey]:
    for tag in record.tags:
        if tag and tag.strip():
            yield tag.strip(), "Tag"
    for keyword in record.keywords:
        if keyword and keyword.strip():
            yield keyword.strip(), "Keyword"
    for path in CONTEXT_CHIP_PATHS:
        value = deep_get(record.context, path)
        if isinstance(value, str) and value.strip():
            yield value.strip(), f"Context:{path}"


class RefinementService:
    """
    Aggregate tags, keywords and context facets of similar content into chips.

    Each chip is scored by the summed similarity of the rows carrying it and
    reports how many rows carry it.
    """

    def __init__(self, similarity: SimilaritySearch) -> None:
        self._similarity = similarity

    async def get_refinement_chips(self, query: str) -> list[RefinementChip]:
        query = (query or "").strip()
        if not query:
            return []

        hits = await self._similarity.search_similar(
            query,
            limit=REFINEMENT_CANDIDATES,
            distance_threshold=REFINEMENT_THRESHOLD,
        )

        scores: dict[ChipKey, float] = {}
        counts: Counter[ChipKey] = Counter()
        for hit in hits:
            score = similarity_from_distance(hit.distance)
            if score <= 0:
                continue
            for chip in _chips_of(hit.record):
                scores[chip] = scores.get(chip, 0.0) + score
                counts[chip] += 1

        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)[:MAX_CHIPS]
        logger.debug("Refinement for '%s': %d candidate chips", query[:50], len(scores))
        return [
            RefinementChip(value=value, type=chip_type, count=counts[(value, chip_type)], score=score)
            for (value, chip_type), score in ranked
        ]
