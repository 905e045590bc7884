"""
Retrieval Models - Data types for the retrieval domain.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .context import strip_paths

LOCALE_FIELDS = ("locale", "language", "country")
FILTER_FIELDS = ("locale", "language", "country", "page_id")


class ResultSource(str, Enum):
    """Which retrieval path produced a record."""

    SEMANTIC = "semantic"
    METADATA = "metadata"


class RelaxationStage(str, Enum):
    """States of the relaxation controller."""

    STRICT = "strict"
    ROLE_RELAXED = "role_relaxed"
    CONTEXT_RELAXED = "context_relaxed"
    EMPTY = "empty"


class QueryRequest(BaseModel):
    """Incoming query. Only ``message`` is required (checked by the service)."""

    message: str | None = None
    section_key: str | None = Field(default=None, alias="sectionKey")
    role: str | None = Field(default=None, alias="original_field_name")
    locale: str | None = None
    language: str | None = None
    country: str | None = None
    page_id: str | None = Field(default=None, alias="pageId")
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)
    limit: int | None = None

    model_config = {"populate_by_name": True}


class QueryHint(BaseModel):
    """Advisory interpretation of a message, e.g. from an LLM."""

    raw_query: str | None = None
    section_key: str | None = None
    section_name: str | None = None
    page_id: str | None = None
    role: str | None = None
    locale: str | None = None
    language: str | None = None
    country: str | None = None
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class SearchCriteria(BaseModel):
    """Immutable, normalized search criteria for one retrieval attempt."""

    message: str = Field(..., min_length=1)
    section_key: str | None = None
    role: str | None = None
    role_hint: str | None = None
    locale: str | None = None
    language: str | None = None
    country: str | None = None
    page_id: str | None = None
    soft_fields: frozenset[str] = frozenset()
    tags: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    context: dict[str, Any] = Field(default_factory=dict)
    soft_paths: frozenset[str] = frozenset()
    limit: int = Field(default=15, ge=1, le=200)
    distance_threshold: float | None = None

    model_config = {"frozen": True}

    def hard_value(self, name: str) -> str | None:
        """Value of a filter field, or None when absent or only inferred."""
        if name in self.soft_fields:
            return None
        value = getattr(self, name)
        return value or None

    @property
    def has_context_filter(self) -> bool:
        """True when any locale/page filter or filter context is in force."""
        if any(self.hard_value(name) for name in FILTER_FIELDS):
            return True
        return bool(self.filter_context())

    def filter_context(self) -> dict[str, Any]:
        """Context with soft (inferred) leaves removed, for exact-match filters."""
        return strip_paths(self.context, self.soft_paths)

    def without_role(self) -> SearchCriteria:
        return self.model_copy(update={"role": None})

    def without_context(self) -> SearchCriteria:
        return self.model_copy(
            update={
                "locale": None,
                "language": None,
                "country": None,
                "page_id": None,
                "soft_fields": frozenset(),
                "context": {},
                "soft_paths": frozenset(),
            }
        )


class ContentRecord(BaseModel):
    """A stored content section as returned by either collaborator."""

    id: str
    section_path: str = ""
    section_uri: str = ""
    content_role: str | None = None
    cleansed_text: str = ""
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)
    saved_at: datetime | None = None


class ScoredRecord(BaseModel):
    """Semantic search hit with its vector distance (lower is closer)."""

    record: ContentRecord
    distance: float


class RetrievalBatch(BaseModel):
    """Joined output of the retrieval paths for one attempt."""

    semantic: list[ScoredRecord] = Field(default_factory=list)
    metadata: list[ContentRecord] = Field(default_factory=list)
    section_keys: list[str] = Field(default_factory=list)
    discovered: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.semantic and not self.metadata


class ResultRecord(BaseModel):
    """One entry of the query response."""

    section: str
    sequence_id: str = ""
    section_path: str = ""
    section_uri: str = ""
    cleansed_text: str = ""
    content_role: str | None = None
    source: ResultSource
    match_terms: list[str] = Field(default_factory=list)
    tenant: str | None = None
    page_id: str | None = None
    locale: str | None = None
    country: str | None = None
    language: str | None = None
    last_modified: str | None = None


class QueryOutcome(BaseModel):
    """Final results plus the relaxation path that produced them."""

    results: list[ResultRecord] = Field(default_factory=list)
    stage: RelaxationStage = RelaxationStage.EMPTY
    stages_tried: list[RelaxationStage] = Field(default_factory=list)


class SemanticHit(BaseModel):
    """Raw semantic search hit for the plain search endpoint."""

    section_path: str
    section_uri: str
    cleansed_text: str
    content_role: str | None = None
    distance: float
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_scored(cls, scored: ScoredRecord) -> SemanticHit:
        record = scored.record
        return cls(
            section_path=record.section_path,
            section_uri=record.section_uri,
            cleansed_text=record.cleansed_text,
            content_role=record.content_role,
            distance=scored.distance,
            tags=record.tags,
            keywords=record.keywords,
            context=record.context,
        )


class RefinementChip(BaseModel):
    """Suggested refinement derived from semantically similar content."""

    value: str
    type: str
    count: int = 0
    score: float = 0.0
