from __future__ import annotations

import pytest

from patrika.news.categories import (
    CANONICAL_CATEGORIES,
    DEFAULT_CATEGORY,
    is_canonical,
    normalize_categories,
    normalize_category,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("technology", "Tech"),
        ("Gadgets", "Tech"),
        ("ECONOMY", "Business"),
        ("finance", "Business"),
        (" sport ", "Sports"),
        ("wellness", "Health"),
        ("movies", "Entertainment"),
        ("education", "Science"),
        ("india", "India"),
        ("general", "General"),
    ],
)
def test_synonyms_map_to_canonical(raw: str, expected: str) -> None:
    assert normalize_category(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_missing_category_defaults_to_general(raw: str | None) -> None:
    assert normalize_category(raw) == DEFAULT_CATEGORY


def test_unknown_category_is_kept_with_capital_first_letter() -> None:
    assert normalize_category("lifestyle") == "Lifestyle"
    assert normalize_category("autoMobiles") == "AutoMobiles"
    assert not is_canonical("Lifestyle")


@pytest.mark.parametrize("raw", ["technology", "Tech", "lifestyle", "", "SPORTS", "world"])
def test_normalization_is_idempotent(raw: str) -> None:
    once = normalize_category(raw)
    assert normalize_category(once) == once


def test_canonical_values_map_to_themselves() -> None:
    for category in CANONICAL_CATEGORIES:
        assert normalize_category(category) == category
        assert is_canonical(category)


def test_normalize_categories_dedupes_in_order() -> None:
    assert normalize_categories(["technology", "World", "tech", None, "general"]) == ("Tech", "World", "General")
