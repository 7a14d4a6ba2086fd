from __future__ import annotations

from collections.abc import Iterable

DEFAULT_CATEGORY = "General"

CANONICAL_CATEGORIES: tuple[str, ...] = (
    "India",
    "World",
    "Tech",
    "Politics",
    "Business",
    "Sports",
    "Health",
    "Entertainment",
    "Science",
    "Other",
    DEFAULT_CATEGORY,
)

CATEGORY_SYNONYMS: dict[str, str] = {
    "india": "India",
    "world": "World",
    "tech": "Tech",
    "technology": "Tech",
    "gadgets": "Tech",
    "politics": "Politics",
    "business": "Business",
    "economy": "Business",
    "finance": "Business",
    "sports": "Sports",
    "sport": "Sports",
    "health": "Health",
    "healthcare": "Health",
    "wellness": "Health",
    "entertainment": "Entertainment",
    "movies": "Entertainment",
    "science": "Science",
    "education": "Science",
    "other": "Other",
    "general": DEFAULT_CATEGORY,
}


def normalize_category(raw: str | None) -> str:
    """Map a free-form category label onto the canonical set.

    Unknown labels are accepted as ad-hoc categories with their first letter
    upper-cased, so unexpected feed metadata never blocks ingestion.
    """
    if raw is None:
        return DEFAULT_CATEGORY
    value = raw.strip()
    if not value:
        return DEFAULT_CATEGORY

    canonical = CATEGORY_SYNONYMS.get(value.casefold())
    if canonical is not None:
        return canonical
    return value[0].upper() + value[1:]


def normalize_categories(values: Iterable[str | None]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(normalize_category(value), None)
    return tuple(seen)


def is_canonical(category: str) -> bool:
    return category in CANONICAL_CATEGORIES
