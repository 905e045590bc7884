"""
LLM Query Interpreter - Turns a free-form message into a structured QueryHint.

The hint is advisory: the criteria builder only uses it to fill gaps, and
every value it carries is treated as inferred (soft).
"""

from __future__ import annotations

import logging
from typing import Any

from sectionlens.domains.retrieval.context import build_from_path, is_blank
from sectionlens.domains.retrieval.models import QueryHint

from .service import LLMService

logger = logging.getLogger(__name__)

__all__ = ["LLMQueryInterpreter", "INTERPRETATION_PROMPT", "parse_hint"]

INTERPRETATION_PROMPT = """You extract search filters from requests about website content sections.

Return one JSON object with any of these keys, omitting keys you cannot infer:
- "sectionKey": section identifier such as "hero-section" or "accordion-section-items"
- "sectionName": human readable section name
- "pageId": page slug such as "ipad-pro"
- "role": content field such as "headline", "copy", "cta"
- "locale": locale such as "en_US" or "ko_KR"
- "language": ISO language code such as "en"
- "country": ISO country code such as "US"
- "tags": list of topical tags
- "keywords": list of keywords
- "context": nested object of metadata filters, e.g. {"envelope": {"sectionName": "..."}}
- "contextPath" and "contextValue": a single filter given as a path list and value
- "rawQuery": the request restated as a short search phrase

Do not invent values that the request does not mention."""

_STRING_FIELDS = {
    "rawQuery": "raw_query",
    "sectionKey": "section_key",
    "sectionName": "section_name",
    "pageId": "page_id",
    "role": "role",
    "locale": "locale",
    "language": "language",
    "country": "country",
}


def _text(value: Any) -> str | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _strings(value: Any) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []
    return [s for s in (_text(v) for v in value) if s]


def parse_hint(data: dict[str, Any]) -> QueryHint | None:
    """
    Build a QueryHint from the model's JSON; None when nothing usable came back.

    Accepts camelCase or snake_case keys. A nested "context" object wins over
    a contextPath/contextValue pair.
    """
    fields: dict[str, Any] = {}
    for key, name in _STRING_FIELDS.items():
        value = _text(data.get(key, data.get(name)))
        if value:
            fields[name] = value

    fields["tags"] = _strings(data.get("tags"))
    fields["keywords"] = _strings(data.get("keywords"))

    context = data.get("context")
    if isinstance(context, dict) and not is_blank(context):
        fields["context"] = context
    else:
        path = data.get("contextPath")
        if isinstance(path, (str, list)) and not is_blank(path):
            fields["context"] = build_from_path(path, data.get("contextValue"))

    hint = QueryHint(**fields)
    useful = any(not is_blank(v) for k, v in hint.model_dump().items() if k != "raw_query")
    return hint if useful else None


class LLMQueryInterpreter:
    """
    QueryInterpreter backed by a local LLM.

    Example:
        >>> interpreter = LLMQueryInterpreter(LLMService())
        >>> hint = await interpreter.interpret("headline for hero-section in Korea")
        >>> hint.section_key
        'hero-section'
    """

    def __init__(self, llm: LLMService) -> None:
        self._llm = llm

    async def interpret(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> QueryHint | None:
        prompt = f"Request: {message}"
        if context:
            prompt += f"\nKnown filters: {context}"

        data = await self._llm.generate_json(prompt, INTERPRETATION_PROMPT)
        hint = parse_hint(data)
        logger.debug("Interpreted '%s' -> %s", message[:50], hint)
        return hint
