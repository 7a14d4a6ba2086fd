from __future__ import annotations

import asyncio
import json
import logging
from typing import Annotated

import typer
from redis.exceptions import RedisError
from sqlalchemy import text

from patrika.core.config import Settings, get_settings
from patrika.core.exceptions import ServiceUnavailableError
from patrika.core.logging import configure_logging
from patrika.core.redis_client import build_redis_client
from patrika.db.init import init_db
from patrika.db.session import build_engine
from patrika.jobs.worker import run_rq_worker
from patrika.news.categories import normalize_category
from patrika.news.ingest import resolve_origin
from patrika.news.sources import FEED_SOURCES
from patrika.runtime import build_runtime

app = typer.Typer(help="Patrika news ingestion command-line interface")
LOGGER = logging.getLogger(__name__)


def _load_settings() -> Settings:
    settings = get_settings()
    configure_logging(settings)
    return settings


async def _ping_redis(settings: Settings) -> None:
    client = build_redis_client(settings)
    try:
        await client.ping()
    finally:
        await client.aclose()


@app.command("init-db")
def init_db_command() -> None:
    settings = _load_settings()
    init_db(build_engine(settings))
    typer.echo("Initialized database schema")


@app.command("healthcheck")
def healthcheck_command() -> None:
    settings = get_settings()
    configure_logging(settings)
    failed = False

    typer.echo(f"[INFO] QUEUE_BACKEND={settings.queue_backend} CACHE_BACKEND={settings.cache_backend}")

    engine = build_engine(settings)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        typer.echo("[OK]  DB connection")
    except Exception as exc:
        typer.echo(f"[FAIL] DB connection ({exc})")
        failed = True

    if "redis" in (settings.queue_backend, settings.cache_backend):
        try:
            asyncio.run(_ping_redis(settings))
            typer.echo("[OK]  Redis connection")
        except (RedisError, OSError) as exc:
            # queue and cache both degrade without Redis
            typer.echo(f"[WARN] Redis unavailable ({exc}); background ingestion disabled")
    else:
        typer.echo("[INFO] Redis not configured")

    if failed:
        raise typer.Exit(code=1)


@app.command("sources")
def sources_command() -> None:
    for source in FEED_SOURCES:
        typer.echo(f"{normalize_category(source.category):<14} {resolve_origin(source):<18} {source.endpoint}")
    typer.echo(f"{len(FEED_SOURCES)} sources")


async def _ingest_once(settings: Settings) -> dict[str, object]:
    runtime = await build_runtime(settings)
    try:
        stats = await runtime.ingest_once()
    finally:
        await runtime.aclose()
    return stats.as_dict()


@app.command("ingest-once")
def ingest_once_command() -> None:
    settings = _load_settings()
    stats = asyncio.run(_ingest_once(settings))
    typer.echo(
        f"Ingest done | sources_processed={stats['sourcesProcessed']} new_items={stats['newItems']} errors={stats['errors']}"
    )


async def _trigger_update(settings: Settings) -> tuple[str, bool]:
    runtime = await build_runtime(settings)
    try:
        job = await runtime.service.trigger_news_update()
    finally:
        await runtime.aclose()
    return job.id, job.acknowledged_only


@app.command("trigger-update")
def trigger_update_command() -> None:
    settings = _load_settings()
    job_id, acknowledged_only = asyncio.run(_trigger_update(settings))
    if acknowledged_only:
        typer.echo(f"Job queue unavailable; update acknowledged as {job_id} but not scheduled")
    else:
        typer.echo(f"News update queued: {job_id}")


async def _read_news(settings: Settings, categories: list[str], page: int, limit: int) -> dict[str, object]:
    runtime = await build_runtime(settings)
    try:
        result = await runtime.service.get_news(categories or None, page, limit)
    finally:
        await runtime.aclose()
    return result.to_response()


@app.command("news")
def news_command(
    category: Annotated[list[str] | None, typer.Option("--category", "-c", help="Repeatable category filter")] = None,
    page: Annotated[int, typer.Option(min=1)] = 1,
    limit: Annotated[int, typer.Option(min=1, max=100)] = 10,
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw response")] = False,
) -> None:
    settings = _load_settings()
    try:
        response = asyncio.run(_read_news(settings, category or [], page, limit))
    except ServiceUnavailableError as exc:
        typer.echo(f"News unavailable: {exc}")
        raise typer.Exit(code=1) from None

    if as_json:
        typer.echo(json.dumps(response, indent=2))
        return

    if response.get("stale"):
        typer.echo(f"[WARN] {response['warning']}")
    for item in response["news"]:
        typer.echo(f"{item['publishedAt']}  [{', '.join(item['categories'])}] {item['title']} ({item['source']})")
    typer.echo(
        f"page {response['page']}/{response['totalPages']} | total_results={response['totalResults']}"
    )


async def _run_until_stopped(settings: Settings) -> None:
    runtime = await build_runtime(settings)
    try:
        await runtime.run(asyncio.Event())
    finally:
        await runtime.aclose()


@app.command("run")
def run_command() -> None:
    settings = _load_settings()
    try:
        asyncio.run(_run_until_stopped(settings))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; shutting down")


@app.command("worker")
def worker_command(
    burst: Annotated[bool, typer.Option("--burst", help="Exit once the queue is empty")] = False,
) -> None:
    settings = _load_settings()
    if settings.queue_backend != "redis":
        typer.echo(f"[FAIL] QUEUE_BACKEND={settings.queue_backend}; jobs run inside `patrika run`")
        raise typer.Exit(code=1)
    try:
        run_rq_worker(settings, burst=burst)
    except (RedisError, OSError) as exc:
        typer.echo(f"[FAIL] Redis unavailable ({exc})")
        raise typer.Exit(code=1) from None


if __name__ == "__main__":
    app()
