"""
Context Merger - Deep merge of nested context maps with precedence.

Context maps are schema-less nested dicts. Everything that reads or combines
them goes through deep_get / deep_merge so the precedence rules live in one
place:

- scalar leaves: the earlier (more explicit) source wins
- list leaves: union in first-seen order, no duplicates
- None and blank strings are absent and never overwrite a present value
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sectionlens.domains.locale import LocaleTables, get_locale_tables

logger = logging.getLogger(__name__)

__all__ = [
    "ContextMerger",
    "MergedContext",
    "build_from_path",
    "deep_get",
    "deep_merge",
    "is_blank",
    "iter_leaves",
    "strip_paths",
]

Path = str | Sequence[str]

LOCALE_KEYS = ("locale", "language", "country")


def is_blank(value: Any) -> bool:
    """None, blank strings and empty containers count as absent."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _split(path: Path) -> list[str]:
    if isinstance(path, str):
        return [part for part in path.split(".") if part]
    return list(path)


def deep_get(mapping: Mapping[str, Any] | None, path: Path, default: Any = None) -> Any:
    """Read a nested value by dotted path (or key sequence)."""
    current: Any = mapping
    for key in _split(path):
        if not isinstance(current, Mapping) or key not in current:
            return default
        current = current[key]
    return default if current is None else current


def _clean(value: Any) -> Any:
    """Deep copy without blank leaves; lists deduplicated in order."""
    if isinstance(value, Mapping):
        cleaned = {k: _clean(v) for k, v in value.items() if not is_blank(v)}
        return {k: v for k, v in cleaned.items() if not is_blank(v)}
    if isinstance(value, (list, tuple, set, frozenset)):
        return _union([], value)
    return copy.deepcopy(value)


def _union(first: Sequence[Any], second: Any) -> list[Any]:
    out: list[Any] = []
    for item in [*first, *second]:
        if is_blank(item):
            continue
        if item not in out:
            out.append(copy.deepcopy(item))
    return out


def _merge_into(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if is_blank(value):
            continue
        existing = target.get(key)
        if is_blank(existing):
            cleaned = _clean(value)
            if not is_blank(cleaned):
                target[key] = cleaned
        elif isinstance(existing, dict) and isinstance(value, Mapping):
            _merge_into(existing, value)
        elif isinstance(existing, list) and isinstance(value, (list, tuple, set, frozenset)):
            target[key] = _union(existing, value)
        # otherwise the earlier source keeps its scalar


def deep_merge(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge context maps; earlier sources take precedence."""
    merged: dict[str, Any] = {}
    for source in sources:
        if source:
            _merge_into(merged, source)
    return merged


def iter_leaves(mapping: Mapping[str, Any] | None, prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield (dotted_path, value) for every non-mapping leaf."""
    if not mapping:
        return
    for key, value in mapping.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            yield from iter_leaves(value, path)
        else:
            yield path, value


def strip_paths(mapping: Mapping[str, Any] | None, paths: frozenset[str] | set[str]) -> dict[str, Any]:
    """Copy of mapping without the given dotted leaf paths; empty parents pruned."""
    result: dict[str, Any] = {}
    for path, value in iter_leaves(mapping):
        if path in paths or is_blank(value):
            continue
        node = result
        parts = path.split(".")
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = copy.deepcopy(value)
    return result


def build_from_path(path: Path, value: Any) -> dict[str, Any]:
    """Nest a single value under a dotted path: ("a.b", 1) -> {"a": {"b": 1}}."""
    keys = _split(path)
    if not keys or is_blank(value):
        return {}
    root: dict[str, Any] = {}
    node = root
    for key in keys[:-1]:
        node = node.setdefault(key, {})
    node[keys[-1]] = value
    return root


@dataclass(frozen=True)
class MergedContext:
    """Effective context plus the dotted paths whose values are only inferred."""

    values: dict[str, Any] = field(default_factory=dict)
    soft_paths: frozenset[str] = frozenset()

    def filter_view(self) -> dict[str, Any]:
        return strip_paths(self.values, self.soft_paths)


class ContextMerger:
    """
    Merge request, interpretation and criteria-derived contexts.

    Request values are hard. Interpretation values are advisory and so are
    soft. Derived values are hard unless listed in ``derived_soft_paths``.
    A missing canonical locale/language/country is filled from the Locale
    Tables and marked soft.
    """

    def __init__(self, tables: LocaleTables | None = None) -> None:
        self._tables = tables or get_locale_tables()

    def merge(
        self,
        request_context: Mapping[str, Any] | None = None,
        hint_context: Mapping[str, Any] | None = None,
        derived_context: Mapping[str, Any] | None = None,
        derived_soft_paths: frozenset[str] | set[str] = frozenset(),
    ) -> MergedContext:
        merged = deep_merge(request_context, hint_context, derived_context)

        soft: set[str] = set()
        for path, value in iter_leaves(merged):
            if not is_blank(deep_get(request_context, path)):
                continue
            if path not in derived_soft_paths and deep_get(derived_context, path) == value:
                continue
            soft.add(path)

        soft |= self._complete_locale(merged)

        if soft:
            logger.debug("Merged context soft paths: %s", sorted(soft))
        return MergedContext(values=merged, soft_paths=frozenset(soft))

    def _complete_locale(self, merged: dict[str, Any]) -> set[str]:
        present = {
            key: merged[key]
            for key in LOCALE_KEYS
            if isinstance(merged.get(key), str) and merged[key].strip()
        }
        if not present:
            return set()

        triple = self._tables.complete(**present)
        added: set[str] = set()
        for key in LOCALE_KEYS:
            value = getattr(triple, key)
            if not value:
                continue
            merged[key] = value
            if key not in present:
                added.add(key)
        return added
