"""
Tests for the criteria builder.
"""

from __future__ import annotations

import pytest

from sectionlens.config.errors import ErrorCode, InvalidRequestError

from .criteria import CriteriaBuilder, extract_section_key, normalize_token
from .models import QueryHint, QueryRequest


@pytest.fixture
def builder() -> CriteriaBuilder:
    return CriteriaBuilder()


# --- Token Extraction Tests ---


def test_extract_section_key_pattern() -> None:
    """Test *-section* tokens are extracted from messages."""
    assert extract_section_key("Show chapter-nav-section content") == "chapter-nav-section"
    assert extract_section_key("copy in Accordion-Section-Items?") == "accordion-section-items"


def test_extract_section_key_hyphen_fallback() -> None:
    """Test a token with two or more hyphens is used when no *-section* exists."""
    assert extract_section_key("what is in the hero-banner-large block") == "hero-banner-large"
    assert extract_section_key("plain words only") is None


def test_normalize_token() -> None:
    """Test tokens are trimmed, lower-cased and slugified."""
    assert normalize_token("  Hero  Banner__Large ") == "hero-banner-large"
    assert normalize_token("---") is None


# --- Build Tests ---


def test_build_rejects_blank_message(builder: CriteriaBuilder) -> None:
    """Test a blank message is an invalid request."""
    with pytest.raises(InvalidRequestError) as exc_info:
        builder.build(QueryRequest(message="   "))
    assert exc_info.value.code == ErrorCode.INVALID_REQUEST


def test_build_korea_scenario(builder: CriteriaBuilder) -> None:
    """Test section key, role hint and country are read from the message."""
    criteria = builder.build(QueryRequest(message="headline for accordion-section for Korea"))
    assert criteria.section_key == "accordion-section"
    assert criteria.role is None
    assert criteria.role_hint == "headline"
    assert criteria.country == "KR"
    assert criteria.language == "ko"
    assert criteria.locale == "ko_KR"
    # stated country is hard, derived members are soft
    assert criteria.hard_value("country") == "KR"
    assert criteria.hard_value("language") is None
    assert criteria.hard_value("locale") is None
    assert criteria.filter_context() == {"country": "KR"}


def test_build_explicit_fields_win(builder: CriteriaBuilder) -> None:
    """Test explicit request fields override hints and message patterns."""
    request = QueryRequest(
        message="headline for accordion-section for Japan",
        sectionKey="Hero-Section",
        original_field_name="copy",
        country="US",
    )
    hint = QueryHint(section_key="other-section", country="FR", role="title")
    criteria = builder.build(request, hint)
    assert criteria.section_key == "hero-section"
    assert criteria.role == "copy"
    assert criteria.role_hint is None
    assert criteria.country == "US"
    assert criteria.language == "en"


def test_build_hint_values_are_soft(builder: CriteriaBuilder) -> None:
    """Test interpretation hints fill gaps but never become hard filters."""
    hint = QueryHint(section_key="hero-section", locale="fr_FR", role="headline")
    criteria = builder.build(QueryRequest(message="what does the hero say"), hint)
    assert criteria.section_key == "hero-section"
    assert criteria.locale == "fr_FR"
    assert criteria.role is None
    assert criteria.role_hint == "headline"
    assert criteria.hard_value("locale") is None
    assert not criteria.has_context_filter


def test_build_locale_decomposition(builder: CriteriaBuilder) -> None:
    """Test an explicit locale yields language and country without contradiction."""
    criteria = builder.build(QueryRequest(message="hero copy", locale="en_US"))
    assert (criteria.language, criteria.country) == ("en", "US")
    assert criteria.hard_value("locale") == "en_US"

    criteria = builder.build(QueryRequest(message="hero copy", locale="fr_CA", language="en"))
    assert criteria.language == "en"
    assert criteria.country == "CA"


def test_build_unknown_country_dropped(builder: CriteriaBuilder) -> None:
    """Test an unknown country alias sets no country."""
    criteria = builder.build(QueryRequest(message="hero copy", country="Atlantis"))
    assert criteria.country is None
    assert not criteria.has_context_filter


def test_build_page_id_from_path(builder: CriteriaBuilder) -> None:
    """Test a page id is taken from a locale-prefixed path."""
    criteria = builder.build(QueryRequest(message="copy on /content/brand/en_US/ipad-pro/index"))
    assert criteria.page_id == "ipad-pro"
    assert criteria.locale == "en_US"


def test_build_page_id_never_a_locale(builder: CriteriaBuilder) -> None:
    """Test locale-shaped tokens are not taken as page ids."""
    criteria = builder.build(QueryRequest(message="show the en_US page"))
    assert criteria.page_id is None
    assert criteria.locale == "en_US"

    criteria = builder.build(QueryRequest(message="headline on the ipad-air page"))
    assert criteria.page_id == "ipad-air"


def test_build_tags_keywords_deduplicated(builder: CriteriaBuilder) -> None:
    """Test tags and keywords keep first-seen order without duplicates."""
    request = QueryRequest(message="hero", tags=["iPad", "pro", "ipad"], keywords=["m4"])
    hint = QueryHint(tags=["Pro", "air"], keywords=["m4", "oled"])
    criteria = builder.build(request, hint)
    assert criteria.tags == ("iPad", "pro", "air")
    assert criteria.keywords == ("m4", "oled")


@pytest.mark.parametrize(("limit", "expected"), [(None, 15), (0, 15), (-3, 15), (40, 40), (500, 200)])
def test_build_limit_clamped(builder: CriteriaBuilder, limit: int | None, expected: int) -> None:
    """Test limit defaults to 15 and is clamped to 200."""
    criteria = builder.build(QueryRequest(message="hero", limit=limit))
    assert criteria.limit == expected


def test_build_request_context_merged(builder: CriteriaBuilder) -> None:
    """Test request context is merged with hint context and kept hard."""
    request = QueryRequest(message="hero", context={"envelope": {"tenant": "brand"}, "locale": "ko_KR"})
    hint = QueryHint(context={"facets": {"sectionKey": "hero-section"}})
    criteria = builder.build(request, hint)
    assert criteria.context["envelope"] == {"tenant": "brand"}
    assert criteria.context["facets"] == {"sectionKey": "hero-section"}
    assert criteria.locale == "ko_KR"
    assert criteria.filter_context() == {"envelope": {"tenant": "brand"}, "locale": "ko_KR"}


def test_build_drops_unresolved_context_locale(builder: CriteriaBuilder) -> None:
    """Test locale leaves the tables cannot resolve are not kept as filters."""
    request = QueryRequest(message="hero", context={"locale": "zz_ZZ", "country": "Narnia", "tenant": "brand"})
    criteria = builder.build(request)
    assert criteria.locale is None
    assert criteria.country is None
    assert criteria.filter_context() == {"tenant": "brand"}


def test_build_request_field_overrides_context_locale(builder: CriteriaBuilder) -> None:
    """Test the resolved locale replaces a conflicting context leaf."""
    request = QueryRequest(message="hero", locale="en_US", context={"locale": "ko_KR"})
    criteria = builder.build(request)
    assert criteria.locale == "en_US"
    assert criteria.context["locale"] == "en_US"
    assert criteria.context["country"] == "US"
    # derived members stay soft
    assert criteria.filter_context() == {"locale": "en_US"}


def test_request_accepts_field_names_and_aliases(builder: CriteriaBuilder) -> None:
    """Test request filters can be given by field name or wire alias."""
    by_name = QueryRequest(message="hero", section_key="hero-section", role="headline", page_id="ipad-pro")
    by_alias = QueryRequest.model_validate(
        {"message": "hero", "sectionKey": "hero-section", "original_field_name": "headline", "pageId": "ipad-pro"}
    )
    assert by_name == by_alias
    criteria = builder.build(by_alias)
    assert (criteria.section_key, criteria.role, criteria.page_id) == ("hero-section", "headline", "ipad-pro")
