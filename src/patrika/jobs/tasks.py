"""Functions executed by rq workers (`patrika worker`)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from redis import Redis
from rq import get_current_job

from patrika.cache.tiered import KEY_PREFIX
from patrika.core.config import get_settings
from patrika.db.session import build_engine, build_session_factory
from patrika.news.ingest import FeedProcessor
from patrika.news.store import NewsStore

LOGGER = logging.getLogger(__name__)


def _report_progress(progress: int) -> None:
    job = get_current_job()
    if job is None:
        return
    job.meta["progress"] = progress
    job.save_meta()


async def _run_ingest_pass() -> dict[str, Any]:
    settings = get_settings()
    engine = build_engine(settings)
    try:
        store = NewsStore(build_session_factory(engine))
        async with httpx.AsyncClient() as client:
            stats = await FeedProcessor.from_settings(settings, store, client).process_all()
    finally:
        engine.dispose()
    return stats.as_dict()


def fetch_news(data: dict[str, Any] | None = None) -> dict[str, Any]:
    trigger = (data or {}).get("trigger", "scheduled")
    LOGGER.info("Starting %s news fetch", trigger)
    _report_progress(10)
    stats = asyncio.run(_run_ingest_pass())
    _report_progress(100)
    return {"success": True, **stats}


def clear_cached_pages(job: Any, connection: Redis, result: Any, *args: Any, **kwargs: Any) -> None:
    """Success callback: drop cached pages once a pass has stored new items.

    Fallback entries live under another prefix and are left to expire.
    """
    if not isinstance(result, dict) or not result.get("newItems"):
        return
    keys = list(connection.scan_iter(match=f"{KEY_PREFIX}*", count=100))
    if keys:
        connection.delete(*keys)
    LOGGER.info("Job %s stored %d new items; cleared %d cached pages", job.id, result["newItems"], len(keys))
