"""
Result Reconciler - Deduplicate, filter, order and number retrieval results.

Merge order is semantic rows (similarity rank) then metadata rows (recency).
The first record seen for a DedupKey wins, so semantic rows take priority on
collision. Only hard filters drop records; a record that simply lacks a value
is never treated as conflicting.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import NamedTuple

from sectionlens.domains.locale import get_locale_tables

from .context import deep_get
from .criteria import SECTION_KEY_PATTERN, normalize_token
from .models import (
    ContentRecord,
    ResultRecord,
    ResultSource,
    RetrievalBatch,
    SearchCriteria,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DedupKey",
    "ResolvedFields",
    "ResultReconciler",
    "content_hash",
    "matches_criteria",
    "resolve_fields",
]

SEQUENCE_PREFIX = "cf"
DEFAULT_SECTION = "search"

_PATH_LOCALE = re.compile(r"/([a-z]{2}[_-][A-Z]{2})(?=/|$)")
_PATH_PAGE = re.compile(r"/[a-z]{2}[_-][A-Z]{2}/([^/]+)/")
_PATH_TENANT = re.compile(r"/content/dam/([^/]+)/")


def content_hash(text: str | None) -> str:
    """SHA-256 hex digest of the cleansed text."""
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


class DedupKey(NamedTuple):
    """Identity of one logical unit of content across retrieval sources."""

    section_path: str
    content_role: str
    text_hash: str

    @classmethod
    def of(cls, record: ContentRecord) -> DedupKey:
        return cls(
            section_path=record.section_path or "",
            content_role=record.content_role or "",
            text_hash=content_hash(record.cleansed_text),
        )


class ResolvedFields(NamedTuple):
    """Locale/page/tenant values read from a record's context or path."""

    section_key: str | None
    locale: str | None
    language: str | None
    country: str | None
    page_id: str | None
    tenant: str | None


def _context_value(record: ContentRecord, *keys: str) -> str | None:
    for prefix in ("envelope", "facets", None):
        for key in keys:
            value = deep_get(record.context, f"{prefix}.{key}" if prefix else key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def resolve_fields(record: ContentRecord, default_tenant: str | None = None) -> ResolvedFields:
    """Resolve filterable fields of a record from its context, then its path."""
    tables = get_locale_tables()
    paths = [p for p in (record.section_uri, record.section_path) if p]

    section_key = _context_value(record, "sectionKey")
    if section_key is None:
        for segment in record.section_path.split("/"):
            match = SECTION_KEY_PATTERN.search(segment)
            if match:
                section_key = match.group(0)
                break

    locale = tables.normalize_locale(_context_value(record, "locale"))
    if locale is None:
        for path in paths:
            match = _PATH_LOCALE.search(path)
            if match:
                locale = tables.normalize_locale(match.group(1))
                break

    from_language, from_country = tables.decompose(locale)
    language = tables.resolve_language(_context_value(record, "language")) or from_language
    country = tables.resolve_country(_context_value(record, "country")) or from_country

    page_id = _context_value(record, "pageId")
    if page_id is None:
        for path in paths:
            match = _PATH_PAGE.search(path)
            if match:
                page_id = match.group(1)
                break

    tenant = _context_value(record, "tenant")
    if tenant is None:
        for path in paths:
            match = _PATH_TENANT.search(path)
            if match:
                tenant = match.group(1)
                break

    return ResolvedFields(
        section_key=normalize_token(section_key),
        locale=locale,
        language=language,
        country=country,
        page_id=page_id,
        tenant=tenant or default_tenant,
    )


def matches_criteria(
    record: ContentRecord, resolved: ResolvedFields, criteria: SearchCriteria
) -> bool:
    """False only when a record value conflicts with a hard filter."""
    if criteria.role and record.content_role:
        if record.content_role.strip().lower() != criteria.role.strip().lower():
            return False

    for name in ("locale", "language", "country"):
        wanted = criteria.hard_value(name)
        actual = getattr(resolved, name)
        if wanted and actual and wanted.lower() != actual.lower():
            return False

    wanted_page = criteria.hard_value("page_id")
    if wanted_page and resolved.page_id:
        if normalize_token(resolved.page_id) != normalize_token(wanted_page):
            return False
    return True


class ResultReconciler:
    """
    Turn a retrieval batch into the final, numbered result list.

    Example:
        >>> reconciler = ResultReconciler()
        >>> results = reconciler.reconcile(batch, criteria)
        >>> [r.sequence_id for r in results]
        ['cf1', 'cf2']
    """

    def __init__(self, default_tenant: str | None = None) -> None:
        self._default_tenant = default_tenant

    def reconcile(self, batch: RetrievalBatch, criteria: SearchCriteria) -> list[ResultRecord]:
        merged: dict[DedupKey, tuple[ContentRecord, ResultSource]] = {}
        for scored in batch.semantic:
            merged.setdefault(DedupKey.of(scored.record), (scored.record, ResultSource.SEMANTIC))
        for record in batch.metadata:
            merged.setdefault(DedupKey.of(record), (record, ResultSource.METADATA))

        results: list[ResultRecord] = []
        dropped = 0
        for record, source in merged.values():
            resolved = resolve_fields(record, self._default_tenant)
            if not matches_criteria(record, resolved, criteria):
                dropped += 1
                continue
            results.append(self._to_result(record, source, resolved, criteria, batch))
            if len(results) >= criteria.limit:
                break

        for position, result in enumerate(results, 1):
            result.sequence_id = f"{SEQUENCE_PREFIX}{position}"

        logger.debug(
            "Reconciled: semantic=%d, metadata=%d, unique=%d, dropped=%d, returned=%d",
            len(batch.semantic),
            len(batch.metadata),
            len(merged),
            dropped,
            len(results),
        )
        return results

    def _to_result(
        self,
        record: ContentRecord,
        source: ResultSource,
        resolved: ResolvedFields,
        criteria: SearchCriteria,
        batch: RetrievalBatch,
    ) -> ResultRecord:
        driving_key = criteria.section_key
        if driving_key is None and batch.discovered and resolved.section_key in batch.section_keys:
            driving_key = resolved.section_key

        role = criteria.role or criteria.role_hint or record.content_role
        page_id = resolved.page_id or criteria.page_id

        match_terms = [
            term
            for term in (driving_key, *criteria.tags, *criteria.keywords, role, page_id)
            if term
        ]

        return ResultRecord(
            section=criteria.section_key or resolved.section_key or DEFAULT_SECTION,
            section_path=record.section_path,
            section_uri=record.section_uri,
            cleansed_text=record.cleansed_text,
            content_role=record.content_role,
            source=source,
            match_terms=match_terms,
            tenant=resolved.tenant,
            page_id=page_id,
            locale=resolved.locale,
            country=resolved.country,
            language=resolved.language,
            last_modified=record.saved_at.isoformat() if record.saved_at else None,
        )
