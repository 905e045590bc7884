"""
Locale Tables - Immutable ISO language/country indices and alias resolution.

Built once per process by get_locale_tables() and shared read-only across
requests. All lookups are case-insensitive; unknown or ambiguous tokens
resolve to None instead of a guess.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from . import data

logger = logging.getLogger(__name__)

__all__ = ["LocaleTables", "LocaleTriple", "get_locale_tables", "LOCALE_PATTERN"]

LOCALE_PATTERN = re.compile(r"^([A-Za-z]{2})[_-]([A-Za-z]{2})$")
# Inside free text only the canonical lang_COUNTRY casing counts as a locale.
_LOCALE_IN_TEXT = re.compile(r"(?<![A-Za-z0-9])([a-z]{2})[_-]([A-Z]{2})(?![A-Za-z0-9])")
_WORD = re.compile(r"[a-z0-9][a-z0-9.'-]*")
_MAX_PHRASE_WORDS = 6


@dataclass(frozen=True)
class LocaleTriple:
    """Locale, language and country, with the names of the derived members."""

    locale: str | None = None
    language: str | None = None
    country: str | None = None
    derived: frozenset[str] = field(default_factory=frozenset)


class LocaleTables:
    """
    Read-only locale lookup indices.

    Example:
        >>> tables = get_locale_tables()
        >>> tables.decompose("ko_KR")
        ('ko', 'KR')
        >>> tables.resolve_country("Korea")
        'KR'
    """

    def __init__(
        self,
        languages: Mapping[str, str],
        countries: Mapping[str, str],
        country_aliases: Mapping[str, str | None],
        language_aliases: Mapping[str, str],
        primary_language: Mapping[str, str],
        primary_country: Mapping[str, str],
    ) -> None:
        self._languages = MappingProxyType({k.lower(): v for k, v in languages.items()})
        self._countries = MappingProxyType({k.upper(): v for k, v in countries.items()})

        country_names: dict[str, str | None] = {
            name.lower(): code.upper() for code, name in countries.items()
        }
        for alias, code in country_aliases.items():
            country_names[alias.lower()] = code.upper() if code else None
        self._country_names = MappingProxyType(country_names)

        language_names: dict[str, str] = {
            name.lower(): code.lower() for code, name in languages.items()
        }
        for alias, code in language_aliases.items():
            language_names[alias.lower()] = code.lower()
        self._language_names = MappingProxyType(language_names)

        self._primary_language = MappingProxyType(dict(primary_language))
        self._primary_country = MappingProxyType(dict(primary_country))

    @classmethod
    def build(cls) -> LocaleTables:
        """Build tables from the bundled ISO data."""
        tables = cls(
            languages=data.LANGUAGES,
            countries=data.COUNTRIES,
            country_aliases=data.COUNTRY_ALIASES,
            language_aliases=data.LANGUAGE_ALIASES,
            primary_language=data.PRIMARY_LANGUAGE,
            primary_country=data.PRIMARY_COUNTRY,
        )
        logger.debug(
            "Locale tables built: languages=%d, countries=%d, country names=%d",
            len(tables._languages),
            len(tables._countries),
            len(tables._country_names),
        )
        return tables

    # --- Code checks ---

    def is_language(self, code: str | None) -> bool:
        return bool(code) and code.strip().lower() in self._languages

    def is_country(self, code: str | None) -> bool:
        return bool(code) and code.strip().upper() in self._countries

    def is_locale(self, token: str | None) -> bool:
        """True when token is a lang_COUNTRY string made of known codes."""
        language, country = self.decompose(token)
        return language is not None and country is not None

    def looks_like_locale(self, token: str | None) -> bool:
        """True for any xx_YY / xx-YY shaped token, known codes or not."""
        return bool(token) and LOCALE_PATTERN.match(token.strip()) is not None

    # --- Locale strings ---

    def decompose(self, locale: str | None) -> tuple[str | None, str | None]:
        """Split ``xx_YY`` into (language, country); unknown halves become None."""
        if not locale:
            return None, None
        match = LOCALE_PATTERN.match(locale.strip())
        if not match:
            return None, None
        language = match.group(1).lower()
        country = match.group(2).upper()
        return (
            language if language in self._languages else None,
            country if country in self._countries else None,
        )

    def compose(self, language: str | None, country: str | None) -> str | None:
        """Build ``xx_YY`` from known codes, else None."""
        if not self.is_language(language) or not self.is_country(country):
            return None
        assert language is not None and country is not None
        return f"{language.strip().lower()}_{country.strip().upper()}"

    def normalize_locale(self, locale: str | None) -> str | None:
        """Canonical casing for a locale string, or None when malformed."""
        language, country = self.decompose(locale)
        return self.compose(language, country)

    # --- Names and aliases ---

    def resolve_country(self, token: str | None) -> str | None:
        """Map an ISO2 code, ISO name or common alias to an ISO2 code."""
        if not token:
            return None
        key = " ".join(token.strip().split()).lower()
        if len(key) == 2 and key.upper() in self._countries:
            return key.upper()
        return self._country_names.get(key)

    def resolve_language(self, token: str | None) -> str | None:
        """Map an ISO 639-1 code, language name or alias to a code."""
        if not token:
            return None
        key = " ".join(token.strip().split()).lower()
        if len(key) == 2 and key in self._languages:
            return key
        return self._language_names.get(key)

    def language_for_country(self, country: str | None) -> str | None:
        if not country:
            return None
        return self._primary_language.get(country.strip().upper())

    def country_for_language(self, language: str | None) -> str | None:
        if not language:
            return None
        return self._primary_country.get(language.strip().lower())

    # --- Triple completion ---

    def complete(
        self,
        locale: str | None = None,
        language: str | None = None,
        country: str | None = None,
    ) -> LocaleTriple:
        """
        Fill in whichever of locale/language/country can be derived.

        Supplied values are normalized but never overridden. Derived members
        are listed in ``LocaleTriple.derived``.
        """
        locale = self.normalize_locale(locale)
        language = self.resolve_language(language)
        country = self.resolve_country(country)
        derived: set[str] = set()

        if locale:
            from_language, from_country = self.decompose(locale)
            if language is None and from_language:
                language = from_language
                derived.add("language")
            if country is None and from_country:
                country = from_country
                derived.add("country")
        else:
            if country and language is None:
                language = self.language_for_country(country)
                if language:
                    derived.add("language")
            elif language and country is None:
                country = self.country_for_language(language)
                if country:
                    derived.add("country")
            locale = self.compose(language, country)
            if locale:
                derived.add("locale")

        return LocaleTriple(
            locale=locale,
            language=language,
            country=country,
            derived=frozenset(derived),
        )

    # --- Free text scanning ---

    def find_locale_in_text(self, text: str | None) -> str | None:
        """The single known locale token in text; None if absent or ambiguous."""
        if not text:
            return None
        found = {
            self.compose(m.group(1), m.group(2))
            for m in _LOCALE_IN_TEXT.finditer(text)
        }
        found.discard(None)
        return found.pop() if len(found) == 1 else None

    def find_country_in_text(self, text: str | None) -> str | None:
        """The single country named in text; None if absent or ambiguous."""
        found = self._scan_names(text, self._country_names)
        return found.pop() if len(found) == 1 else None

    def find_language_in_text(self, text: str | None) -> str | None:
        """The single language named in text; None if absent or ambiguous."""
        found = self._scan_names(text, self._language_names)
        return found.pop() if len(found) == 1 else None

    @staticmethod
    def _scan_names(text: str | None, index: Mapping[str, str | None]) -> set[str]:
        if not text:
            return set()
        words = _WORD.findall(text.lower())
        found: set[str] = set()
        i = 0
        while i < len(words):
            matched = 0
            for size in range(min(_MAX_PHRASE_WORDS, len(words) - i), 0, -1):
                phrase = " ".join(words[i : i + size])
                for candidate in (phrase, phrase.rstrip(".,'")):
                    # bare two-letter words ("us", "it") are too noisy to trust
                    if len(candidate) <= 2 and candidate not in ("uk",):
                        continue
                    if candidate in index:
                        code = index[candidate]
                        if code:
                            found.add(code)
                        matched = size
                        break
                if matched:
                    break
            i += matched or 1
        return found


@lru_cache
def get_locale_tables() -> LocaleTables:
    """Get the process-wide locale tables."""
    return LocaleTables.build()
