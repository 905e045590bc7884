"""Tests for SQLite Repository."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from sectionlens.config.errors import ErrorCode, StorageError
from sectionlens.domains.retrieval.contracts import MetadataSearch
from sectionlens.domains.retrieval.models import ContentRecord

from .repository import SQLiteRepository

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_record(record_id: str, path: str, role: str = "headline", age: int = 0, **kwargs) -> ContentRecord:
    return ContentRecord(
        id=record_id,
        section_path=path,
        section_uri=path,
        content_role=role,
        cleansed_text=kwargs.pop("text", f"text {record_id}"),
        saved_at=NOW - timedelta(days=age),
        **kwargs,
    )


@pytest.fixture
async def repo(tmp_path: Path):
    """Create a test repository with temporary database."""
    db_path = tmp_path / "test.db"
    repo = SQLiteRepository(db_path)
    await repo.initialize()
    yield repo
    await repo.close()


async def test_initialize_creates_tables(repo: SQLiteRepository):
    """Test that initialize creates all required tables."""
    conn = await repo._get_connection()
    cursor = await conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table'"
    )
    tables = {row[0] for row in await cursor.fetchall()}

    assert "sections" in tables
    assert "sections_fts" in tables


async def test_repository_satisfies_contract(repo: SQLiteRepository):
    """Test the repository implements the metadata search contract."""
    assert isinstance(repo, MetadataSearch)


async def test_insert_and_get_section(repo: SQLiteRepository):
    """Test inserting and retrieving a section with JSON fields."""
    record = make_record(
        "s1",
        "/content/dam/brand/ko_KR/ipad-pro/accordion-section",
        text="iPad Pro",
        tags=["ipad", "pro"],
        keywords=["m4"],
        context={"envelope": {"locale": "ko_KR"}},
    )
    assert await repo.insert_section(record) == "s1"

    [stored] = await repo.get_sections(["s1", "missing"])
    assert stored.cleansed_text == "iPad Pro"
    assert stored.content_role == "headline"
    assert stored.tags == ["ipad", "pro"]
    assert stored.context == {"envelope": {"locale": "ko_KR"}}
    assert stored.saved_at == NOW
    assert await repo.count_sections() == 1


async def test_insert_generates_id_and_upserts(repo: SQLiteRepository):
    """Test missing IDs are generated and re-inserts update in place."""
    generated = await repo.insert_section(make_record("", "/p/hero-section"))
    assert generated

    await repo.insert_section(make_record("s1", "/p/hero-section", text="old"))
    await repo.insert_section(make_record("s1", "/p/hero-section", text="new"))
    [stored] = await repo.get_sections(["s1"])
    assert stored.cleansed_text == "new"
    assert await repo.count_sections() == 2


async def test_find_by_section_key_most_recent_first(repo: SQLiteRepository):
    """Test section key lookup matches paths and orders by save time."""
    await repo.insert_section(make_record("old", "/p/accordion-section", age=10))
    await repo.insert_section(make_record("new", "/p/accordion-section", age=1))
    await repo.insert_section(make_record("other", "/p/hero-section"))
    await repo.insert_section(
        make_record("usage", "/p/x", context={"envelope": {"usagePath": "/a/Accordion-Section/b"}}, age=5)
    )

    rows = await repo.find_by_section_key("accordion-section", limit=10)
    assert [r.id for r in rows] == ["new", "usage", "old"]

    rows = await repo.find_by_section_key("accordion-section", limit=1)
    assert [r.id for r in rows] == ["new"]


async def test_find_by_section_key_escapes_wildcards(repo: SQLiteRepository):
    """Test LIKE wildcards in keys are matched literally."""
    await repo.insert_section(make_record("1", "/p/hero-section"))
    assert await repo.find_by_section_key("hero%", limit=10) == []


async def test_find_by_context_section_key(repo: SQLiteRepository):
    """Test declared context section keys are matched exactly."""
    await repo.insert_section(make_record("f", "/p/x", context={"facets": {"sectionKey": "gallery-section"}}))
    await repo.insert_section(make_record("e", "/p/y", context={"envelope": {"sectionKey": "Gallery-Section"}}, age=1))
    await repo.insert_section(make_record("n", "/p/gallery-section"))

    rows = await repo.find_by_context_section_key("gallery-section", limit=10)
    assert [r.id for r in rows] == ["f", "e"]


async def test_full_text_searches_metadata_only(repo: SQLiteRepository):
    """Test full-text search covers metadata but never body text."""
    await repo.insert_section(make_record("tagged", "/p/hero-section", tags=["display"], text="nothing here"))
    await repo.insert_section(make_record("body", "/p/other-section", text="a brilliant display"))
    await repo.insert_section(make_record("summary", "/p/gallery-section", summary="Display gallery", age=1))

    rows = await repo.find_by_metadata_full_text("display", limit=10)
    assert [r.id for r in rows] == ["tagged", "summary"]


async def test_full_text_ignores_query_syntax(repo: SQLiteRepository):
    """Test FTS operators in user text do not raise."""
    await repo.insert_section(make_record("1", "/p/hero-section", tags=["pro"]))
    rows = await repo.find_by_metadata_full_text('pro AND "NEAR(', limit=10)
    assert [r.id for r in rows] == ["1"]
    assert await repo.find_by_metadata_full_text("!!!", limit=10) == []


async def test_find_by_page_id(repo: SQLiteRepository):
    """Test page lookup by declared page id or locale-prefixed path segment."""
    await repo.insert_section(make_record("path", "/content/dam/brand/en_US/ipad-pro/hero-section"))
    await repo.insert_section(make_record("facet", "/p/x", context={"facets": {"pageId": "ipad-pro"}}, age=1))
    await repo.insert_section(make_record("other", "/content/dam/brand/en_US/mac/hero-section"))

    rows = await repo.find_by_page_id("ipad-pro", limit=10)
    assert [r.id for r in rows] == ["path", "facet"]


async def test_read_failure_is_storage_read_error(repo: SQLiteRepository):
    """Test a failing query surfaces as a storage read error."""
    conn = await repo._get_connection()
    await conn.execute("DROP TABLE sections")

    with pytest.raises(StorageError) as exc_info:
        await repo.find_by_section_key("hero-section", limit=10)
    assert exc_info.value.code == ErrorCode.STORAGE_READ_FAILED
