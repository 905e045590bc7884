"""
Tests for the content query service, end to end over in-memory collaborators.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from sectionlens.config.errors import InvalidRequestError, LLMError

from .contracts import MetadataSearch, SimilaritySearch
from .models import ContentRecord, QueryHint, QueryRequest, RelaxationStage, ScoredRecord
from .reconciler import DedupKey
from .service import ContentQueryService

KR_ACCORDION = "/content/dam/brand/ko_KR/ipad-pro/accordion-section"
US_HERO = "/content/dam/brand/en_US/ipad-pro/hero-section"
NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class InMemoryMetadata:
    """Metadata collaborator over a list of records, newest first."""

    def __init__(self, records: list[ContentRecord]) -> None:
        self.records = sorted(records, key=lambda r: r.saved_at or NOW, reverse=True)
        self.calls: list[tuple[str, str]] = []

    async def find_by_section_key(self, section_key: str, limit: int) -> list[ContentRecord]:
        self.calls.append(("section_key", section_key))
        return [r for r in self.records if r.section_path.endswith("/" + section_key)][:limit]

    async def find_by_context_section_key(self, section_key: str, limit: int) -> list[ContentRecord]:
        self.calls.append(("context_section_key", section_key))
        return []

    async def find_by_metadata_full_text(self, query: str, limit: int) -> list[ContentRecord]:
        self.calls.append(("full_text", query))
        words = set(query.lower().split())
        return [r for r in self.records if words & {t.lower() for t in r.tags}][:limit]

    async def find_by_page_id(self, page_id: str, limit: int) -> list[ContentRecord]:
        self.calls.append(("page_id", page_id))
        return [r for r in self.records if f"/{page_id}/" in r.section_path][:limit]


def make_record(record_id: str, text: str, path: str = KR_ACCORDION, role: str = "headline", age: int = 0) -> ContentRecord:
    return ContentRecord(
        id=record_id,
        section_path=path,
        section_uri=path,
        content_role=role,
        cleansed_text=text,
        tags=["ipad"],
        saved_at=NOW - timedelta(days=age),
    )


@pytest.fixture
def corpus() -> list[ContentRecord]:
    return [
        make_record("1", "iPad Pro"),
        make_record("2", "iPad Prod Test", age=30),
        make_record("3", "Supercharged by M4", role="copy", age=1),
        make_record("4", "Hello", path=US_HERO, role="headline"),
    ]


@pytest.fixture
def similarity() -> AsyncMock:
    mock = AsyncMock()
    mock.search_similar.return_value = []
    return mock


@pytest.fixture
def service(corpus: list[ContentRecord], similarity: AsyncMock) -> ContentQueryService:
    return ContentQueryService(similarity=similarity, metadata=InMemoryMetadata(corpus))


# --- Contract Tests ---


def test_in_memory_collaborators_satisfy_contracts(similarity: AsyncMock) -> None:
    """Test the test doubles satisfy the collaborator protocols."""
    assert isinstance(InMemoryMetadata([]), MetadataSearch)
    assert isinstance(similarity, SimilaritySearch)


# --- Query Tests ---


async def test_blank_message_rejected_before_retrieval(
    service: ContentQueryService, similarity: AsyncMock
) -> None:
    """Test a blank message raises before any collaborator is called."""
    with pytest.raises(InvalidRequestError):
        await service.query(QueryRequest(message=""))
    with pytest.raises(InvalidRequestError):
        await service.query(QueryRequest())
    similarity.search_similar.assert_not_awaited()


async def test_korea_headline_scenario(similarity: AsyncMock) -> None:
    """Test the accordion-section/Korea request keeps both distinct headline texts."""
    corpus = [
        make_record("1", "iPad Pro"),
        make_record("2", "iPad Prod Test", age=30),
        make_record("3", "Hello", path=US_HERO),
    ]
    service = ContentQueryService(similarity=similarity, metadata=InMemoryMetadata(corpus))

    results = await service.query(QueryRequest(message="headline for accordion-section for Korea"))

    assert [r.cleansed_text for r in results] == ["iPad Pro", "iPad Prod Test"]
    assert [r.sequence_id for r in results] == ["cf1", "cf2"]
    assert all(r.country == "KR" for r in results)
    assert all(r.section == "accordion-section" for r in results)
    assert results[0].match_terms == ["accordion-section", "headline", "ipad-pro"]


async def test_korea_scenario_with_other_roles(service: ContentQueryService) -> None:
    """Test a role hint from the message does not filter other roles."""
    results = await service.query(QueryRequest(message="headline for accordion-section for Korea"))

    assert [r.cleansed_text for r in results] == ["iPad Pro", "Supercharged by M4", "iPad Prod Test"]
    assert [r.sequence_id for r in results] == ["cf1", "cf2", "cf3"]


async def test_explicit_role_filters(service: ContentQueryService) -> None:
    """Test an explicit role keeps only records with that role."""
    request = QueryRequest(message="accordion-section", original_field_name="copy")
    outcome = await service.run(request)

    assert outcome.stage == RelaxationStage.STRICT
    assert [r.cleansed_text for r in outcome.results] == ["Supercharged by M4"]


async def test_role_relaxed_outcome(service: ContentQueryService) -> None:
    """Test an unknown role falls back to the section's content."""
    request = QueryRequest(message="accordion-section", original_field_name="eyebrow")
    outcome = await service.run(request)

    assert outcome.stage == RelaxationStage.ROLE_RELAXED
    assert len(outcome.results) == 3
    assert outcome.results[0].sequence_id == "cf1"


async def test_context_relaxed_outcome(service: ContentQueryService) -> None:
    """Test a locale that excludes every row falls back to unfiltered content."""
    request = QueryRequest(message="accordion-section", original_field_name="eyebrow", locale="fr_FR")
    outcome = await service.run(request)

    assert outcome.stage == RelaxationStage.CONTEXT_RELAXED
    assert outcome.stages_tried == [
        RelaxationStage.STRICT,
        RelaxationStage.ROLE_RELAXED,
        RelaxationStage.CONTEXT_RELAXED,
    ]
    assert {r.country for r in outcome.results} == {"KR"}


async def test_no_results_is_empty_list(service: ContentQueryService) -> None:
    """Test an unmatched query returns an empty list, not an error."""
    outcome = await service.run(QueryRequest(message="unknown-widget-section"))
    assert outcome.results == []
    assert outcome.stage == RelaxationStage.EMPTY


async def test_semantic_rows_rank_first(
    service: ContentQueryService, similarity: AsyncMock, corpus: list[ContentRecord]
) -> None:
    """Test a semantic hit leads and suppresses its metadata duplicate."""
    similarity.search_similar.return_value = [ScoredRecord(record=corpus[1], distance=0.05)]
    results = await service.query(QueryRequest(message="accordion-section"))

    assert results[0].cleansed_text == "iPad Prod Test"
    assert results[0].source.value == "semantic"
    assert [r.cleansed_text for r in results].count("iPad Prod Test") == 1


async def test_query_is_idempotent(service: ContentQueryService) -> None:
    """Test repeated queries return the same ordered dedup keys."""
    request = QueryRequest(message="headline for accordion-section for Korea")

    def keys(results) -> list[DedupKey]:
        return [
            DedupKey.of(
                ContentRecord(
                    id="",
                    section_path=r.section_path,
                    content_role=r.content_role,
                    cleansed_text=r.cleansed_text,
                )
            )
            for r in results
        ]

    first = await service.query(request)
    second = await service.query(request)
    assert keys(first) == keys(second)
    assert [r.sequence_id for r in first] == [r.sequence_id for r in second]


# --- Interpretation Tests ---


async def test_interpreter_hint_used(corpus: list[ContentRecord], similarity: AsyncMock) -> None:
    """Test an interpretation hint supplies the section key."""
    interpreter = AsyncMock()
    interpreter.interpret.return_value = QueryHint(section_key="hero-section")
    service = ContentQueryService(similarity, InMemoryMetadata(corpus), interpreter=interpreter)

    results = await service.query(QueryRequest(message="what does the big banner say"))
    assert [r.cleansed_text for r in results] == ["Hello"]
    interpreter.interpret.assert_awaited_once_with("what does the big banner say", None)


async def test_interpreter_failure_degrades(corpus: list[ContentRecord], similarity: AsyncMock) -> None:
    """Test an interpreter failure does not block the pipeline."""
    interpreter = AsyncMock()
    interpreter.interpret.side_effect = LLMError("model not loaded")
    service = ContentQueryService(similarity, InMemoryMetadata(corpus), interpreter=interpreter)

    results = await service.query(QueryRequest(message="accordion-section"))
    assert len(results) == 3
