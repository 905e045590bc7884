"""
Tests for result reconciliation.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from .models import ContentRecord, ResultSource, RetrievalBatch, ScoredRecord, SearchCriteria
from .reconciler import DedupKey, ResultReconciler, content_hash, matches_criteria, resolve_fields

KR_PATH = "/content/dam/brand/ko_KR/ipad-pro/accordion-section"
US_PATH = "/content/dam/brand/en_US/ipad-pro/accordion-section"


def make_record(
    record_id: str,
    text: str,
    path: str = KR_PATH,
    role: str | None = "headline",
    **kwargs,
) -> ContentRecord:
    return ContentRecord(
        id=record_id,
        section_path=path,
        section_uri=path,
        content_role=role,
        cleansed_text=text,
        **kwargs,
    )


@pytest.fixture
def reconciler() -> ResultReconciler:
    return ResultReconciler()


# --- DedupKey Tests ---


def test_content_hash_is_sha256() -> None:
    """Test the text hash is a stable SHA-256 hex digest."""
    assert content_hash("iPad Pro") == content_hash("iPad Pro")
    assert content_hash("iPad Pro") != content_hash("iPad Prod Test")
    assert len(content_hash("")) == 64


def test_dedup_key_includes_text() -> None:
    """Test records differing only by text have different keys."""
    first = make_record("1", "iPad Pro")
    second = make_record("2", "iPad Prod Test")
    same = make_record("3", "iPad Pro")
    assert DedupKey.of(first) != DedupKey.of(second)
    assert DedupKey.of(first) == DedupKey.of(same)


# --- Field Resolution Tests ---


def test_resolve_fields_from_path() -> None:
    """Test locale, page id and tenant are read from the path."""
    resolved = resolve_fields(make_record("1", "x"))
    assert resolved.locale == "ko_KR"
    assert resolved.language == "ko"
    assert resolved.country == "KR"
    assert resolved.page_id == "ipad-pro"
    assert resolved.tenant == "brand"
    assert resolved.section_key == "accordion-section"


def test_resolve_fields_context_wins() -> None:
    """Test context values take precedence over path values."""
    record = make_record(
        "1",
        "x",
        context={"envelope": {"locale": "en_GB", "tenant": "store"}, "facets": {"pageId": "mac"}},
    )
    resolved = resolve_fields(record)
    assert resolved.locale == "en_GB"
    assert resolved.country == "GB"
    assert resolved.page_id == "mac"
    assert resolved.tenant == "store"


def test_resolve_fields_default_tenant() -> None:
    """Test the default tenant applies when none is found."""
    record = make_record("1", "x", path="/sections/hero")
    assert resolve_fields(record, default_tenant="brand").tenant == "brand"
    assert resolve_fields(record).locale is None


# --- Criteria Matching Tests ---


def test_matches_hard_conflicts() -> None:
    """Test explicit filters drop conflicting records."""
    record = make_record("1", "x", path=US_PATH)
    resolved = resolve_fields(record)
    assert not matches_criteria(record, resolved, SearchCriteria(message="m", country="KR"))
    assert not matches_criteria(record, resolved, SearchCriteria(message="m", role="copy"))
    assert not matches_criteria(record, resolved, SearchCriteria(message="m", page_id="mac"))
    assert matches_criteria(record, resolved, SearchCriteria(message="m", country="US", role="Headline"))


def test_matches_soft_never_drops() -> None:
    """Test inferred values never cause a drop."""
    record = make_record("1", "x", path=US_PATH)
    criteria = SearchCriteria(message="m", language="ko", soft_fields=frozenset({"language"}))
    assert matches_criteria(record, resolve_fields(record), criteria)


def test_matches_missing_value_is_not_conflict() -> None:
    """Test a record without a locale survives a locale filter."""
    record = make_record("1", "x", path="/sections/hero", role=None)
    criteria = SearchCriteria(message="m", country="KR", role="headline")
    assert matches_criteria(record, resolve_fields(record), criteria)


def test_section_directly_under_locale_has_no_page() -> None:
    """Test a section segment right after the locale is not taken as the page id."""
    record = make_record("1", "x", path="/content/dam/brand/en_US/hero-section")
    resolved = resolve_fields(record)
    assert resolved.page_id is None
    assert resolved.locale == "en_US"
    assert resolved.section_key == "hero-section"


def test_reconcile_keeps_pageless_record_under_page_filter(reconciler: ResultReconciler) -> None:
    """Test a record without a page survives an explicit page filter."""
    record = make_record("1", "x", path="/content/dam/brand/en_US/hero-section")
    criteria = SearchCriteria(message="m", page_id="ipad-pro")
    [result] = reconciler.reconcile(RetrievalBatch(metadata=[record]), criteria)
    assert result.section == "hero-section"
    assert result.match_terms == ["headline", "ipad-pro"]


# --- Reconcile Tests ---


def test_reconcile_semantic_wins_on_collision(reconciler: ResultReconciler) -> None:
    """Test the semantic copy survives when both sources return the same content."""
    shared = make_record("s1", "iPad Pro")
    batch = RetrievalBatch(
        semantic=[ScoredRecord(record=shared, distance=0.1)],
        metadata=[make_record("m1", "iPad Pro"), make_record("m2", "iPad Prod Test")],
    )
    results = reconciler.reconcile(batch, SearchCriteria(message="m"))
    assert [(r.cleansed_text, r.source) for r in results] == [
        ("iPad Pro", ResultSource.SEMANTIC),
        ("iPad Prod Test", ResultSource.METADATA),
    ]


def test_reconcile_sequence_ids_contiguous(reconciler: ResultReconciler) -> None:
    """Test ids are cf1..cfN after filtering and truncation."""
    batch = RetrievalBatch(
        metadata=[
            make_record("1", "a"),
            make_record("2", "b", path=US_PATH),
            make_record("3", "c"),
            make_record("4", "d"),
            make_record("5", "e"),
        ]
    )
    criteria = SearchCriteria(message="m", country="KR", limit=3)
    results = reconciler.reconcile(batch, criteria)
    assert [r.sequence_id for r in results] == ["cf1", "cf2", "cf3"]
    assert [r.cleansed_text for r in results] == ["a", "c", "d"]


def test_reconcile_empty_batch(reconciler: ResultReconciler) -> None:
    """Test an empty batch reconciles to an empty list."""
    assert reconciler.reconcile(RetrievalBatch(), SearchCriteria(message="m")) == []


def test_reconcile_match_terms_and_fields(reconciler: ResultReconciler) -> None:
    """Test diagnostic terms and resolved record fields are populated."""
    saved_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    batch = RetrievalBatch(metadata=[make_record("1", "iPad Pro", saved_at=saved_at)])
    criteria = SearchCriteria(
        message="m",
        section_key="accordion-section",
        role_hint="headline",
        tags=("ipad",),
        keywords=("pro",),
    )
    [result] = reconciler.reconcile(batch, criteria)
    assert result.match_terms == ["accordion-section", "ipad", "pro", "headline", "ipad-pro"]
    assert result.section == "accordion-section"
    assert result.country == "KR"
    assert result.tenant == "brand"
    assert result.last_modified == "2024-05-01T12:00:00+00:00"


def test_reconcile_default_section(reconciler: ResultReconciler) -> None:
    """Test records without any section key fall back to the search section."""
    batch = RetrievalBatch(metadata=[make_record("1", "x", path="/sections/hero", role=None)])
    [result] = reconciler.reconcile(batch, SearchCriteria(message="m"))
    assert result.section == "search"
    assert result.match_terms == []


def test_reconcile_is_deterministic(reconciler: ResultReconciler) -> None:
    """Test identical batches reconcile to the same ordered keys."""
    def batch() -> RetrievalBatch:
        return RetrievalBatch(
            semantic=[ScoredRecord(record=make_record("s1", "b"), distance=0.3)],
            metadata=[make_record("m1", "a"), make_record("m2", "b"), make_record("m3", "c")],
        )

    criteria = SearchCriteria(message="m")
    first = reconciler.reconcile(batch(), criteria)
    second = reconciler.reconcile(batch(), criteria)
    keys = [(r.section_path, r.content_role, content_hash(r.cleansed_text)) for r in first]
    assert keys == [(r.section_path, r.content_role, content_hash(r.cleansed_text)) for r in second]
    assert [r.cleansed_text for r in first] == ["b", "a", "c"]
