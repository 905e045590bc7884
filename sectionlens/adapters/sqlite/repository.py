"""
SQLite Repository - Content section storage with metadata FTS5 search.

Features:
- Async operations via aiosqlite
- Section rows with JSON tags, keywords and context
- FTS5 over metadata fields only (body text is never indexed)
- Section-key, context-key and page-id lookups, most recent first
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from sectionlens.config.errors import ErrorCode, StorageError
from sectionlens.domains.retrieval.models import ContentRecord

logger = logging.getLogger(__name__)

__all__ = ["SQLiteRepository"]

MAX_ROWS = 200
_FTS_TOKEN = re.compile(r"[\w]+", re.UNICODE)


def _like(value: str) -> str:
    escaped = value.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _fts_query(text: str) -> str | None:
    """OR of quoted tokens, so FTS5 syntax in user text is inert."""
    tokens = list(dict.fromkeys(t.lower() for t in _FTS_TOKEN.findall(text)))
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


def _bounded(limit: int) -> int:
    return max(1, min(limit, MAX_ROWS))


class SQLiteRepository:
    """
    SQLite store for cleansed content sections.

    Example:
        >>> repo = SQLiteRepository("data/sectionlens.db")
        >>> await repo.initialize()
        >>> await repo.insert_section(record)
        >>> rows = await repo.find_by_section_key("accordion-section", limit=50)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            try:
                self._connection = await aiosqlite.connect(str(self.db_path))
            except Exception as e:
                raise StorageError(
                    f"Cannot open database: {e}", details={"path": str(self.db_path)}
                ) from e
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def initialize(self) -> None:
        """Initialize database schema."""
        conn = await self._get_connection()

        await conn.executescript("""
            -- Cleansed content sections
            CREATE TABLE IF NOT EXISTS sections (
                id TEXT PRIMARY KEY,
                section_path TEXT NOT NULL DEFAULT '',
                section_uri TEXT NOT NULL DEFAULT '',
                original_field_name TEXT,
                cleansed_text TEXT NOT NULL DEFAULT '',
                summary TEXT,
                tags TEXT,
                keywords TEXT,
                context TEXT,
                saved_at TEXT
            );

            -- FTS5 over metadata only; cleansed_text is deliberately absent
            CREATE VIRTUAL TABLE IF NOT EXISTS sections_fts USING fts5(
                summary,
                tags,
                keywords,
                original_field_name,
                section_path,
                section_uri,
                content='sections',
                content_rowid='rowid',
                tokenize='porter unicode61'
            );

            -- Triggers to keep FTS in sync
            CREATE TRIGGER IF NOT EXISTS sections_ai AFTER INSERT ON sections BEGIN
                INSERT INTO sections_fts(rowid, summary, tags, keywords, original_field_name, section_path, section_uri)
                VALUES (new.rowid, new.summary, new.tags, new.keywords, new.original_field_name, new.section_path, new.section_uri);
            END;

            CREATE TRIGGER IF NOT EXISTS sections_ad AFTER DELETE ON sections BEGIN
                INSERT INTO sections_fts(sections_fts, rowid, summary, tags, keywords, original_field_name, section_path, section_uri)
                VALUES ('delete', old.rowid, old.summary, old.tags, old.keywords, old.original_field_name, old.section_path, old.section_uri);
            END;

            CREATE TRIGGER IF NOT EXISTS sections_au AFTER UPDATE ON sections BEGIN
                INSERT INTO sections_fts(sections_fts, rowid, summary, tags, keywords, original_field_name, section_path, section_uri)
                VALUES ('delete', old.rowid, old.summary, old.tags, old.keywords, old.original_field_name, old.section_path, old.section_uri);
                INSERT INTO sections_fts(rowid, summary, tags, keywords, original_field_name, section_path, section_uri)
                VALUES (new.rowid, new.summary, new.tags, new.keywords, new.original_field_name, new.section_path, new.section_uri);
            END;

            -- Indexes
            CREATE INDEX IF NOT EXISTS idx_sections_saved_at ON sections(saved_at);
            CREATE INDEX IF NOT EXISTS idx_sections_path ON sections(section_path);
        """)

        await conn.commit()
        logger.info("Database initialized: %s", self.db_path)

    async def insert_section(self, record: ContentRecord) -> str:
        """
        Insert or update a section.

        Returns:
            Section ID (generated when the record has none)
        """
        conn = await self._get_connection()
        section_id = record.id or uuid.uuid4().hex
        saved_at = record.saved_at or datetime.now(timezone.utc)

        await conn.execute(
            """
            INSERT INTO sections
            (id, section_path, section_uri, original_field_name, cleansed_text,
             summary, tags, keywords, context, saved_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                section_path = excluded.section_path,
                section_uri = excluded.section_uri,
                original_field_name = excluded.original_field_name,
                cleansed_text = excluded.cleansed_text,
                summary = excluded.summary,
                tags = excluded.tags,
                keywords = excluded.keywords,
                context = excluded.context,
                saved_at = excluded.saved_at
            """,
            (
                section_id,
                record.section_path,
                record.section_uri,
                record.content_role,
                record.cleansed_text,
                record.summary,
                json.dumps(record.tags) if record.tags else None,
                json.dumps(record.keywords) if record.keywords else None,
                json.dumps(record.context) if record.context else None,
                saved_at.isoformat(),
            ),
        )

        await conn.commit()
        return section_id

    async def insert_sections(self, records: Iterable[ContentRecord]) -> list[str]:
        """Insert several sections, returning their IDs in order."""
        return [await self.insert_section(record) for record in records]

    async def get_sections(self, ids: list[str]) -> list[ContentRecord]:
        """Get sections by ID, in the order of ``ids``; unknown IDs are skipped."""
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = await self._fetch(f"SELECT * FROM sections WHERE id IN ({placeholders})", tuple(ids))
        by_id = {record.id: record for record in rows}
        return [by_id[i] for i in ids if i in by_id]

    async def iter_all(self) -> list[ContentRecord]:
        """All sections, oldest first."""
        return await self._fetch("SELECT * FROM sections ORDER BY saved_at, rowid", ())

    async def find_by_section_key(self, section_key: str, limit: int) -> list[ContentRecord]:
        """Sections whose field name, path, uri or usage path mentions the key."""
        pattern = _like(section_key)
        sql = """
            SELECT * FROM sections
            WHERE lower(coalesce(original_field_name, '')) LIKE :key ESCAPE '\\'
               OR lower(section_path) LIKE :key ESCAPE '\\'
               OR lower(section_uri) LIKE :key ESCAPE '\\'
               OR lower(coalesce(json_extract(context, '$.usagePath'), '')) LIKE :key ESCAPE '\\'
               OR lower(coalesce(json_extract(context, '$.envelope.usagePath'), '')) LIKE :key ESCAPE '\\'
            ORDER BY saved_at DESC, rowid DESC
            LIMIT :limit
        """
        return await self._fetch(sql, {"key": pattern, "limit": _bounded(limit)})

    async def find_by_context_section_key(self, section_key: str, limit: int) -> list[ContentRecord]:
        """Sections declaring the key in facets.sectionKey or envelope.sectionKey."""
        sql = """
            SELECT * FROM sections
            WHERE lower(coalesce(json_extract(context, '$.facets.sectionKey'), '')) = :key
               OR lower(coalesce(json_extract(context, '$.envelope.sectionKey'), '')) = :key
            ORDER BY saved_at DESC, rowid DESC
            LIMIT :limit
        """
        return await self._fetch(sql, {"key": section_key.lower(), "limit": _bounded(limit)})

    async def find_by_metadata_full_text(self, query: str, limit: int) -> list[ContentRecord]:
        """Full-text search over metadata fields (summary, tags, keywords, field name, path, uri)."""
        match = _fts_query(query)
        if match is None:
            return []
        sql = """
            SELECT s.* FROM sections_fts
            JOIN sections s ON sections_fts.rowid = s.rowid
            WHERE sections_fts MATCH :match
            ORDER BY s.saved_at DESC, s.rowid DESC
            LIMIT :limit
        """
        return await self._fetch(sql, {"match": match, "limit": _bounded(limit)})

    async def find_by_page_id(self, page_id: str, limit: int) -> list[ContentRecord]:
        """Sections on a page, by declared page id or a /<locale>/<page>/ path segment."""
        sql = """
            SELECT * FROM sections
            WHERE lower(coalesce(json_extract(context, '$.facets.pageId'), '')) = :page
               OR lower(coalesce(json_extract(context, '$.envelope.pageId'), '')) = :page
               OR lower(section_path) LIKE :segment ESCAPE '\\'
               OR lower(section_uri) LIKE :segment ESCAPE '\\'
            ORDER BY saved_at DESC, rowid DESC
            LIMIT :limit
        """
        params = {
            "page": page_id.lower(),
            "segment": _like(f"/{page_id}/"),
            "limit": _bounded(limit),
        }
        return await self._fetch(sql, params)

    async def count_sections(self) -> int:
        """Get total section count."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT COUNT(*) FROM sections")
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _fetch(self, sql: str, params: Any) -> list[ContentRecord]:
        conn = await self._get_connection()
        try:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(f"Query failed: {e}", code=ErrorCode.STORAGE_READ_FAILED) from e
        return [self._to_record(row) for row in rows]

    @staticmethod
    def _to_record(row: aiosqlite.Row) -> ContentRecord:
        data = dict(row)
        saved_at = data.get("saved_at")
        return ContentRecord(
            id=data["id"],
            section_path=data.get("section_path") or "",
            section_uri=data.get("section_uri") or "",
            content_role=data.get("original_field_name"),
            cleansed_text=data.get("cleansed_text") or "",
            summary=data.get("summary"),
            tags=json.loads(data["tags"]) if data.get("tags") else [],
            keywords=json.loads(data["keywords"]) if data.get("keywords") else [],
            context=json.loads(data["context"]) if data.get("context") else {},
            saved_at=datetime.fromisoformat(saved_at) if saved_at else None,
        )
