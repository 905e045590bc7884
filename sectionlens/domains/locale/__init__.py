"""
Locale Domain - ISO language/country normalization.

This domain handles:
- Locale string decomposition (lang_COUNTRY)
- Country name and alias resolution to ISO2
- Derivation of missing locale/language/country members
"""

from .tables import LOCALE_PATTERN, LocaleTables, LocaleTriple, get_locale_tables

__all__ = [
    "LocaleTables",
    "LocaleTriple",
    "LOCALE_PATTERN",
    "get_locale_tables",
]
