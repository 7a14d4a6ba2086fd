from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from dateutil import parser as dtparser


@dataclass(frozen=True, slots=True)
class FeedSource:
    endpoint: str
    category: str
    origin: str = ""


@dataclass(slots=True)
class NewsItem:
    title: str
    url: str
    origin: str
    published_at: datetime
    categories: tuple[str, ...]
    image_url: str = ""
    summary: str | None = None
    author: str = "Unknown"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValueError("NewsItem.title must be non-empty")
        if not self.categories:
            raise ValueError("NewsItem.categories requires at least one category")

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "imageUrl": self.image_url,
            "summary": self.summary,
            "publishedAt": self.published_at.isoformat(),
            "source": self.origin,
            "author": self.author,
            "categories": list(self.categories),
            "url": self.url,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> NewsItem:
        return cls(
            id=payload.get("id"),
            title=payload["title"],
            image_url=payload.get("imageUrl") or "",
            summary=payload.get("summary"),
            published_at=_parse_timestamp(payload["publishedAt"]),
            origin=payload["source"],
            author=payload.get("author") or "Unknown",
            categories=tuple(payload["categories"]),
            url=payload.get("url") or "",
            created_at=_parse_timestamp(payload["createdAt"]),
        )


def _parse_timestamp(value: str) -> datetime:
    parsed = dtparser.isoparse(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed
