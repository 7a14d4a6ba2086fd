from __future__ import annotations

import asyncio
import calendar
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

import feedparser
import httpx
from dateutil import parser as dtparser

from patrika.core.config import BROWSER_USER_AGENT, Settings
from patrika.core.exceptions import DuplicateItemError, FeedFetchError, InvalidItemError
from patrika.news.categories import is_canonical, normalize_category
from patrika.news.extractor import ContentExtractor
from patrika.news.models import FeedSource, NewsItem
from patrika.news.sources import FEED_SOURCES
from patrika.news.store import NewsStore, run_store_call

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestStats:
    sources_processed: int = 0
    new_items: int = 0
    errors: int = 0
    category_counts: dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    def as_dict(self) -> dict[str, Any]:
        return {
            "sourcesProcessed": self.sources_processed,
            "newItems": self.new_items,
            "errors": self.errors,
            "categoryCounts": dict(self.category_counts),
            "startTime": self.started_at.isoformat(),
            "endTime": self.finished_at.isoformat() if self.finished_at else None,
            "durationSeconds": round(self.duration_seconds, 3),
        }


def resolve_origin(source: FeedSource) -> str:
    if source.origin.strip():
        return source.origin.strip()
    try:
        hostname = urlparse(source.endpoint).hostname
    except ValueError:
        hostname = None
    if not hostname:
        LOGGER.warning("Could not extract hostname from %s", source.endpoint)
        return "unknown"
    return hostname


def _entry_published_at(entry: Any) -> datetime:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=UTC)

    for key in ("published", "updated", "pubDate"):
        raw = entry.get(key)
        if not raw:
            continue
        try:
            value = dtparser.parse(str(raw))
        except (ValueError, OverflowError):
            continue
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.now(UTC)


class FeedProcessor:
    def __init__(
        self,
        store: NewsStore,
        extractor: ContentExtractor,
        client: httpx.AsyncClient,
        *,
        sources: Sequence[FeedSource] = FEED_SOURCES,
        feed_timeout_seconds: float = 15.0,
        store_timeout_seconds: float = 5.0,
        user_agent: str = BROWSER_USER_AGENT,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self._client = client
        self.sources = tuple(sources)
        self.feed_timeout_seconds = feed_timeout_seconds
        self.store_timeout_seconds = store_timeout_seconds
        self.user_agent = user_agent

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: NewsStore,
        client: httpx.AsyncClient,
        sources: Sequence[FeedSource] = FEED_SOURCES,
    ) -> FeedProcessor:
        return cls(
            store,
            ContentExtractor.from_settings(settings, client),
            client,
            sources=sources,
            feed_timeout_seconds=settings.feed_timeout_seconds,
            store_timeout_seconds=settings.store_timeout_seconds,
            user_agent=settings.http_user_agent,
        )

    async def fetch_entries(self, source: FeedSource) -> list[Any]:
        try:
            response = await self._client.get(
                source.endpoint,
                headers={"User-Agent": self.user_agent},
                timeout=self.feed_timeout_seconds,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FeedFetchError(f"Feed request failed for {source.endpoint}: {exc}") from exc

        parsed = await asyncio.to_thread(feedparser.parse, response.content)
        if parsed.bozo and not parsed.entries:
            raise FeedFetchError(f"Malformed feed at {source.endpoint}: {parsed.get('bozo_exception')}")
        return list(parsed.entries)

    async def build_item(self, entry: Any, *, origin: str, category: str) -> NewsItem | None:
        title = str(entry.get("title") or "").strip()
        if not title:
            return None

        return NewsItem(
            title=title,
            url=str(entry.get("link") or ""),
            origin=origin,
            published_at=_entry_published_at(entry),
            categories=(category,),
            image_url=await self.extractor.extract_image(entry),
            summary=await self.extractor.extract_summary(entry),
            author=str(entry.get("author") or "").strip() or "Unknown",
        )

    async def _process_source(self, source: FeedSource, inserted: list[NewsItem]) -> None:
        """Store new entries of one feed, appending each stored item to `inserted` as it lands."""
        origin = resolve_origin(source)
        category = normalize_category(source.category)
        LOGGER.info("Processing feed: %s - %s (original: %s)", origin, category, source.category)

        self.extractor.reset()
        entries = await self.fetch_entries(source)

        for entry in entries:
            title = str(entry.get("title") or "").strip()
            if not title:
                continue

            # known items skip extraction, which may scrape the article page
            existing = await run_store_call(
                self.store.find_existing, title, origin, timeout=self.store_timeout_seconds
            )
            if existing is not None:
                LOGGER.debug("Skipped duplicate news item: %s", title)
                continue

            item = await self.build_item(entry, origin=origin, category=category)
            if item is None:
                continue
            try:
                saved = await run_store_call(self.store.insert, item, timeout=self.store_timeout_seconds)
            except DuplicateItemError:
                LOGGER.debug("Skipped duplicate news item on insert: %s", title)
                continue
            except InvalidItemError as exc:
                LOGGER.warning("Skipped news item %r from %s: %s", title, origin, exc)
                continue
            inserted.append(saved)
            LOGGER.debug("Added new news item: %s", title)

    async def process(self, source: FeedSource) -> list[NewsItem]:
        inserted: list[NewsItem] = []
        try:
            await self._process_source(source, inserted)
        except Exception as exc:
            LOGGER.warning("Error processing feed %s: %s", source.endpoint, exc)
        return inserted

    async def process_all(self, sources: Sequence[FeedSource] | None = None) -> IngestStats:
        targets = tuple(sources) if sources is not None else self.sources
        stats = IngestStats()
        LOGGER.info("Starting to process %d feeds", len(targets))

        for source in targets:
            inserted: list[NewsItem] = []
            try:
                await self._process_source(source, inserted)
            except Exception as exc:
                stats.errors += 1
                LOGGER.warning("Error processing feed %s: %s", source.endpoint, exc)
            else:
                stats.sources_processed += 1

            # items stored before a mid-feed failure still count
            stats.new_items += len(inserted)
            for item in inserted:
                for category in item.categories:
                    stats.category_counts[category] = stats.category_counts.get(category, 0) + 1

        stats.finished_at = datetime.now(UTC)
        LOGGER.info(
            "Completed pass in %.2fs: feeds_processed=%d new_items=%d errors=%d",
            stats.duration_seconds,
            stats.sources_processed,
            stats.new_items,
            stats.errors,
        )
        for category, count in sorted(stats.category_counts.items()):
            suffix = "" if is_canonical(category) else " (ad-hoc)"
            LOGGER.info("Category %s: %d new articles%s", category, count, suffix)
        return stats
