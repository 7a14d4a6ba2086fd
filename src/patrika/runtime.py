from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
from redis.asyncio import Redis
from sqlalchemy.engine import Engine

from patrika.cache.backends import CacheBackend, MemoryCacheBackend, RedisCacheBackend
from patrika.cache.tiered import TieredCache
from patrika.core.config import Settings
from patrika.core.redis_client import connect_redis
from patrika.db.init import init_db
from patrika.db.session import build_engine, build_session_factory
from patrika.jobs.queue import BaseJobQueue, Job, build_job_queue
from patrika.jobs.scheduler import NewsScheduler
from patrika.jobs.worker import NewsWorker, NoOpWorker, build_worker
from patrika.news.ingest import FeedProcessor, IngestStats
from patrika.news.models import FeedSource
from patrika.news.service import NewsService
from patrika.news.sources import FEED_SOURCES
from patrika.news.store import NewsStore

LOGGER = logging.getLogger(__name__)


async def build_cache(settings: Settings) -> tuple[TieredCache, Redis | None]:
    """Both tiers live in Redis when it answers, otherwise in process memory."""
    client: Redis | None = None
    if settings.cache_backend == "redis":
        client = await connect_redis(settings)
        if client is None:
            LOGGER.warning("Cache falling back to process memory")

    fast: CacheBackend
    fallback: CacheBackend
    if client is not None:
        fast = fallback = RedisCacheBackend(client)
    else:
        fast, fallback = MemoryCacheBackend(), MemoryCacheBackend()
    cache = TieredCache(
        fast,
        fallback,
        fast_ttl_seconds=settings.fast_cache_ttl_seconds,
        fallback_ttl_seconds=settings.fallback_cache_ttl_seconds,
    )
    return cache, client


@dataclass(slots=True)
class NewsRuntime:
    """Everything a process needs, built once at startup and closed at exit."""

    settings: Settings
    engine: Engine
    store: NewsStore
    cache: TieredCache
    queue: BaseJobQueue
    scheduler: NewsScheduler
    worker: NewsWorker | NoOpWorker
    processor: FeedProcessor
    service: NewsService
    http_client: httpx.AsyncClient
    cache_client: Redis | None = None
    _closed: bool = field(default=False, repr=False)

    async def ingest_once(self) -> IngestStats:
        stats = await self.processor.process_all()
        if stats.new_items > 0:
            await self.cache.invalidate()
        return stats

    async def process_job(self, job: Job) -> dict[str, Any]:
        LOGGER.info("Starting scheduled news fetch (job %s)", job.id)
        stats = await self.processor.process_all()
        return {"success": True, **stats.as_dict()}

    def start_background(self) -> None:
        self.scheduler.start()
        self.scheduler.schedule_news_update(self.settings.fetch_interval_minutes)

    async def run(self, stop_event: asyncio.Event) -> None:
        self.start_background()
        try:
            await self.worker.run_forever(stop_event)
        finally:
            self.scheduler.shutdown()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.scheduler.shutdown()
        await self.queue.close()
        if self.cache_client is not None:
            await self.cache_client.aclose()
        await self.http_client.aclose()
        self.engine.dispose()


async def build_runtime(
    settings: Settings,
    *,
    sources: Sequence[FeedSource] = FEED_SOURCES,
    http_client: httpx.AsyncClient | None = None,
) -> NewsRuntime:
    engine = build_engine(settings)
    init_db(engine)
    store = NewsStore(build_session_factory(engine))

    cache, cache_client = await build_cache(settings)

    client = http_client or httpx.AsyncClient()
    processor = FeedProcessor.from_settings(settings, store, client, sources)

    queue = await build_job_queue(settings)
    scheduler = NewsScheduler.from_settings(settings, queue)
    service = NewsService(store, cache, scheduler, store_timeout_seconds=settings.store_timeout_seconds)

    runtime = NewsRuntime(
        settings=settings,
        engine=engine,
        store=store,
        cache=cache,
        queue=queue,
        scheduler=scheduler,
        worker=NoOpWorker(queue),
        processor=processor,
        service=service,
        http_client=client,
        cache_client=cache_client,
    )
    runtime.worker = build_worker(settings, queue, runtime.process_job)
    queue.on("completed", service.on_ingest_completed)
    return runtime
