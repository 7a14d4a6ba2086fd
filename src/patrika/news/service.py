from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from patrika.cache.tiered import TieredCache, build_query_key
from patrika.core.exceptions import BrokerUnavailableError, ServiceUnavailableError, StoreUnavailableError
from patrika.jobs.queue import Job
from patrika.jobs.scheduler import NewsScheduler
from patrika.news.categories import normalize_categories
from patrika.news.models import NewsItem
from patrika.news.store import NewsStore, run_store_call

LOGGER = logging.getLogger(__name__)

STALE_WARNING = "Serving cached data; the news store is currently unavailable"


@dataclass(slots=True)
class NewsPage:
    items: list[NewsItem]
    total_results: int
    page: int
    limit: int
    stale: bool = False

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_results / self.limit) if self.limit else 0

    @property
    def warning(self) -> str | None:
        return STALE_WARNING if self.stale else None

    def to_cache_payload(self) -> dict[str, Any]:
        return {"items": [item.to_payload() for item in self.items], "totalCount": self.total_results}

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "news": [item.to_payload() for item in self.items],
            "totalResults": self.total_results,
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
        }
        if self.stale:
            response["stale"] = True
            response["warning"] = self.warning
        return response

    @classmethod
    def from_cache_payload(cls, payload: dict[str, Any], page: int, limit: int, *, stale: bool = False) -> NewsPage:
        return cls(
            items=[NewsItem.from_payload(raw) for raw in payload.get("items", [])],
            total_results=int(payload.get("totalCount", 0)),
            page=page,
            limit=limit,
            stale=stale,
        )


def parse_categories(categories: str | Sequence[str] | None) -> list[str] | None:
    """Normalize a category filter; a string may hold comma-separated values."""
    if categories is None:
        return None
    if isinstance(categories, str):
        raw = categories.split(",")
    else:
        raw = [part for value in categories for part in str(value).split(",")]
    values = [value.strip() for value in raw if value and value.strip()]
    if not values:
        return None
    return list(normalize_categories(values))


class NewsService:
    def __init__(
        self,
        store: NewsStore,
        cache: TieredCache,
        scheduler: NewsScheduler | None = None,
        *,
        store_timeout_seconds: float = 5.0,
    ) -> None:
        self.store = store
        self.cache = cache
        self.scheduler = scheduler
        self.store_timeout_seconds = store_timeout_seconds

    async def get_news(
        self,
        categories: str | Sequence[str] | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> NewsPage:
        filters = parse_categories(categories)
        page = max(int(page), 1)
        limit = max(int(limit), 1)
        key = build_query_key(filters, page, limit)

        cached = await self.cache.get_fast(key)
        if cached is not None:
            return NewsPage.from_cache_payload(cached, page, limit)

        offset = (page - 1) * limit
        try:
            items, total = await asyncio.gather(
                run_store_call(self.store.find_page, filters, offset, limit, timeout=self.store_timeout_seconds),
                run_store_call(self.store.count, filters, timeout=self.store_timeout_seconds),
            )
        except StoreUnavailableError as exc:
            LOGGER.warning("Store read failed for %s: %s", key, exc)
            fallback = await self.cache.get_fallback(key)
            if fallback is None:
                raise ServiceUnavailableError("News is temporarily unavailable") from exc
            LOGGER.info("Serving stale fallback data for %s", key)
            return NewsPage.from_cache_payload(fallback, page, limit, stale=True)

        result = NewsPage(items=items, total_results=total, page=page, limit=limit)
        await self.cache.store(key, result.to_cache_payload())
        return result

    async def get_latest_news(self, page: int = 1, limit: int = 10) -> NewsPage:
        return await self.get_news(None, page, limit)

    async def trigger_news_update(self) -> Job:
        if self.scheduler is None:
            raise BrokerUnavailableError("No scheduler configured for news updates")
        return await self.scheduler.add_news_update_job()

    async def on_ingest_completed(self, job: Job, result: Any) -> None:
        new_items = result.get("newItems", 0) if isinstance(result, dict) else 0
        if new_items > 0:
            cleared = await self.cache.invalidate()
            LOGGER.info("Cleared %d cached news pages after %d new items", cleared, new_items)
