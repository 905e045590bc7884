"""
Search Routes - Raw semantic search and refinement chips.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from sectionlens.adapters.vector import VectorSearch
from sectionlens.domains.retrieval import RefinementChip, RefinementService, SemanticHit
from sectionlens.interfaces.api.deps import get_refinement_service, get_vector_search

logger = logging.getLogger(__name__)

router = APIRouter()


class SearchRequest(BaseModel):
    """Search request body."""

    query: str = Field(..., min_length=1, description="Search query")
    limit: int = Field(default=200, ge=1, le=200)
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)
    role: str | None = Field(default=None, alias="original_field_name")
    section_filter: str | None = Field(default=None, alias="sectionFilter")

    model_config = {"populate_by_name": True}


@router.post("/search", response_model=list[SemanticHit])
async def search(
    request: SearchRequest,
    vector_search: VectorSearch = Depends(get_vector_search),
) -> list[SemanticHit]:
    """
    Semantic search with optional post-filters.

    - **query**: Search query text
    - **limit**: Maximum results (1-200)
    - **tags**, **keywords**: Require overlap
    - **context**: Nested metadata the rows must not contradict
    - **original_field_name**: Role substring filter
    - **sectionFilter**: Section key, matched fuzzily
    """
    logger.info(
        "Search query='%s' tags=%s keywords=%s role=%s context_keys=%s section=%s",
        request.query[:80],
        request.tags,
        request.keywords,
        request.role,
        sorted(request.context),
        request.section_filter,
    )
    scored = await vector_search.search_similar(
        request.query,
        role_filter=request.role,
        limit=request.limit,
        tags=request.tags or None,
        keywords=request.keywords or None,
        context=request.context or None,
        section_key_hint=request.section_filter,
    )
    return [SemanticHit.from_scored(s) for s in scored]


@router.get("/refine", response_model=list[RefinementChip])
async def refine(
    query: str = Query(..., description="Search query to suggest refinements for"),
    refinement: RefinementService = Depends(get_refinement_service),
) -> list[RefinementChip]:
    """Suggest refinement chips (tags, keywords, context values) for a query."""
    return await refinement.get_refinement_chips(query)
