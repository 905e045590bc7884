"""
Criteria Builder - Turns a raw query request into immutable SearchCriteria.

Precedence for every field:
1. Explicit request fields (and top-level request context keys)
2. Interpretation hints
3. Patterns found in the message text

Locale hints are resolved through the Locale Tables. Unknown or ambiguous
tokens are dropped, never guessed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from sectionlens.config.errors import InvalidRequestError
from sectionlens.domains.locale import LocaleTables, get_locale_tables

from .context import ContextMerger, deep_get, is_blank
from .models import FILTER_FIELDS, LOCALE_FIELDS, QueryHint, QueryRequest, SearchCriteria

logger = logging.getLogger(__name__)

__all__ = [
    "CriteriaBuilder",
    "MessageSignals",
    "extract_section_key",
    "normalize_token",
]

SECTION_KEY_PATTERN = re.compile(
    r"\b([a-z0-9]+(?:-[a-z0-9]+)*)-section(?:-[a-z0-9]+)*\b", re.IGNORECASE
)
ROLE_HINT_PATTERN = re.compile(
    r"\b([A-Za-z][A-Za-z0-9_-]*)\s+for\s+(?:the\s+)?([A-Za-z0-9][A-Za-z0-9_-]*)",
    re.IGNORECASE,
)
PAGE_PATH_PATTERN = re.compile(r"/[a-z]{2}[_-][A-Z]{2}/([A-Za-z0-9][A-Za-z0-9._-]*)")
PAGE_PREFIX_PATTERN = re.compile(r"\bpage(?:\s+id)?[\s:=]+[\"']?([A-Za-z0-9][A-Za-z0-9._-]*)", re.IGNORECASE)
PAGE_SUFFIX_PATTERN = re.compile(r"\b([A-Za-z0-9][A-Za-z0-9._-]*)\s+page\b", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_TOKEN_PUNCTUATION = ".,;:!?\"'()[]{}<>"

_STOPWORDS = frozenset(
    {
        "a", "all", "an", "and", "any", "anything", "content", "data", "each",
        "every", "everything", "find", "for", "from", "get", "give", "in",
        "items", "list", "look", "me", "my", "of", "on", "our", "results",
        "search", "show", "some", "something", "that", "the", "this", "what",
        "which", "with",
    }
)


def normalize_token(token: str | None) -> str | None:
    """Lower-case, trim and slugify; None when nothing is left."""
    if not token:
        return None
    slug = _NON_ALNUM.sub("-", token.strip().lower()).strip("-")
    return slug or None


def extract_section_key(message: str | None) -> str | None:
    """First ``*-section*`` token, else the first token with two or more hyphens."""
    if not message:
        return None
    match = SECTION_KEY_PATTERN.search(message)
    if match:
        return normalize_token(match.group(0))
    for token in message.split():
        token = token.strip(_TOKEN_PUNCTUATION)
        if token.count("-") >= 2:
            return normalize_token(token)
    return None


@dataclass(frozen=True)
class MessageSignals:
    """Filter values recognised in the free-text message."""

    section_key: str | None = None
    role_hint: str | None = None
    page_id: str | None = None
    locale: str | None = None
    language: str | None = None
    country: str | None = None


class CriteriaBuilder:
    """
    Build SearchCriteria from a request and an optional interpretation hint.

    Values from the request or stated in the message are hard filters.
    Values from hints or derived via the Locale Tables are soft. Only a
    request-supplied role is ever enforced; hinted roles are advisory.

    Example:
        >>> builder = CriteriaBuilder()
        >>> criteria = builder.build(QueryRequest(message="headline for accordion-section for Korea"))
        >>> criteria.section_key, criteria.country, criteria.language
        ('accordion-section', 'KR', 'ko')
    """

    def __init__(
        self,
        tables: LocaleTables | None = None,
        default_limit: int = 15,
        max_limit: int = 200,
        distance_threshold: float | None = None,
    ) -> None:
        self._tables = tables or get_locale_tables()
        self._merger = ContextMerger(self._tables)
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._distance_threshold = distance_threshold

    @staticmethod
    def validate(request: QueryRequest) -> str:
        """Return the trimmed message or raise InvalidRequestError when blank."""
        message = (request.message or "").strip()
        if not message:
            raise InvalidRequestError(
                "Query message must not be blank",
                details={"field": "message"},
            )
        return message

    def build(self, request: QueryRequest, hint: QueryHint | None = None) -> SearchCriteria:
        message = self.validate(request)
        hint = hint or QueryHint()
        signals = self.extract_signals(message)
        request_ctx = request.context or {}
        hint_ctx = hint.context or {}

        section_key = _first(
            normalize_token(request.section_key),
            normalize_token(hint.section_key),
            signals.section_key,
        )

        role = (request.role or "").strip() or None
        role_hint = None
        if role is None:
            role_hint = _first(normalize_token(hint.role), signals.role_hint)

        soft: set[str] = set()
        values: dict[str, str | None] = {}
        resolvers = {
            "locale": self._tables.normalize_locale,
            "language": self._tables.resolve_language,
            "country": self._tables.resolve_country,
            "page_id": normalize_token,
        }
        for name, resolve in resolvers.items():
            context_key = "pageId" if name == "page_id" else name
            candidates = [
                (getattr(request, name), False),
                (deep_get(request_ctx, context_key), False),
                (getattr(hint, name), True),
                (deep_get(hint_ctx, context_key), True),
                (getattr(signals, name), False),
            ]
            value, is_soft = _resolve_first(candidates, resolve)
            values[name] = value
            if value and is_soft:
                soft.add(name)

        triple = self._tables.complete(values["locale"], values["language"], values["country"])
        for name in LOCALE_FIELDS:
            if name in triple.derived:
                values[name] = getattr(triple, name)
                soft.add(name)

        derived_ctx = {name: values[name] for name in LOCALE_FIELDS if values[name]}
        merged = self._merger.merge(
            request_ctx,
            hint_ctx,
            derived_ctx,
            derived_soft_paths={name for name in LOCALE_FIELDS if name in soft},
        )
        context, soft_paths = _pin_locale(merged.values, merged.soft_paths, values, soft)

        criteria = SearchCriteria(
            message=message,
            section_key=section_key,
            role=role,
            role_hint=role_hint,
            locale=values["locale"],
            language=values["language"],
            country=values["country"],
            page_id=values["page_id"],
            soft_fields=frozenset(name for name in FILTER_FIELDS if name in soft),
            tags=_dedupe([*request.tags, *hint.tags]),
            keywords=_dedupe([*request.keywords, *hint.keywords]),
            context=context,
            soft_paths=soft_paths,
            limit=self.clamp_limit(request.limit),
            distance_threshold=self._distance_threshold,
        )
        logger.debug(
            "Built criteria: section_key=%s, role=%s, role_hint=%s, locale=%s, country=%s, page_id=%s, soft=%s",
            criteria.section_key,
            criteria.role,
            criteria.role_hint,
            criteria.locale,
            criteria.country,
            criteria.page_id,
            sorted(criteria.soft_fields),
        )
        return criteria

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            return self._default_limit
        return min(limit, self._max_limit)

    def extract_signals(self, message: str) -> MessageSignals:
        """Recognise section key, role hint, page id and locale hints in text."""
        section_key = extract_section_key(message)
        return MessageSignals(
            section_key=section_key,
            role_hint=self._extract_role_hint(message, section_key),
            page_id=self._extract_page_id(message, section_key),
            locale=self._tables.find_locale_in_text(message),
            language=self._tables.find_language_in_text(message),
            country=self._tables.find_country_in_text(message),
        )

    def _extract_role_hint(self, message: str, section_key: str | None) -> str | None:
        for match in ROLE_HINT_PATTERN.finditer(message):
            field, target = match.group(1), match.group(2)
            if field.lower() in _STOPWORDS:
                continue
            target_key = normalize_token(target)
            if (section_key and target_key == section_key) or "-" in target:
                role = normalize_token(field)
                if role and role != section_key:
                    return role
        return None

    def _extract_page_id(self, message: str, section_key: str | None) -> str | None:
        path_match = PAGE_PATH_PATTERN.search(message)
        if path_match:
            page = path_match.group(1)
            if not self._tables.looks_like_locale(page):
                return normalize_token(page)

        for pattern in (PAGE_PREFIX_PATTERN, PAGE_SUFFIX_PATTERN):
            for match in pattern.finditer(message):
                token = match.group(1).strip(_TOKEN_PUNCTUATION)
                if not self._is_page_candidate(token, section_key):
                    continue
                return normalize_token(token)
        return None

    def _is_page_candidate(self, token: str, section_key: str | None) -> bool:
        if not token or token.lower() in _STOPWORDS:
            return False
        if self._tables.looks_like_locale(token):
            return False
        if normalize_token(token) == section_key:
            return False
        # a country or language name is a locale hint, not a page
        if self._tables.resolve_country(token) or self._tables.resolve_language(token):
            return False
        return True


def _first(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def _resolve_first(
    candidates: list[tuple[object, bool]],
    resolve: Callable[[str], str | None],
) -> tuple[str | None, bool]:
    for raw, is_soft in candidates:
        if is_blank(raw) or not isinstance(raw, str):
            continue
        value = resolve(raw)
        if value:
            return value, is_soft
        logger.debug("Dropping unresolvable filter value: %r", raw)
    return None, False


def _pin_locale(
    context: dict[str, Any],
    soft_paths: frozenset[str],
    values: dict[str, str | None],
    soft: set[str],
) -> tuple[dict[str, Any], frozenset[str]]:
    """Replace top-level locale leaves with the resolved triple; unresolved ones are dropped."""
    pinned = dict(context)
    paths = set(soft_paths)
    for name in LOCALE_FIELDS:
        value = values[name]
        if value:
            pinned[name] = value
            if name in soft:
                paths.add(name)
            else:
                paths.discard(name)
        else:
            if name in pinned:
                logger.debug("Dropping unresolved context %s: %r", name, pinned[name])
            pinned.pop(name, None)
            paths.discard(name)
    return pinned, frozenset(paths)


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        value = (value or "").strip()
        if not value or value.lower() in seen:
            continue
        seen.add(value.lower())
        out.append(value)
    return tuple(out)
