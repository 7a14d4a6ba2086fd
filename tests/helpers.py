from __future__ import annotations

from datetime import UTC, datetime, timedelta

from patrika.news.models import NewsItem

BASE_TIME = datetime(2025, 1, 6, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_item(
    title: str,
    *,
    origin: str = "BBC",
    categories: tuple[str, ...] = ("World",),
    minutes_ago: int = 0,
) -> NewsItem:
    return NewsItem(
        title=title,
        url=f"https://example.com/{title.replace(' ', '-').lower()}",
        origin=origin,
        published_at=BASE_TIME - timedelta(minutes=minutes_ago),
        categories=categories,
        image_url="https://example.com/image.jpg",
        summary=f"Summary of {title}",
    )
