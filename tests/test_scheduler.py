from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from patrika.core.config import Settings
from patrika.jobs.queue import JOB_FETCH_NEWS, InMemoryJobQueue, NoOpJobQueue
from patrika.jobs.scheduler import NewsScheduler


@pytest.mark.asyncio
async def test_rescheduling_leaves_a_single_recurring_job() -> None:
    scheduler = NewsScheduler(InMemoryJobQueue())

    scheduler.schedule_news_update(10)
    scheduler.schedule_news_update(10)

    jobs = scheduler.scheduled_jobs()
    assert [job.id for job in jobs] == [JOB_FETCH_NEWS]
    assert jobs[0].trigger.interval == timedelta(minutes=10)


@pytest.mark.asyncio
async def test_recurring_job_runs_immediately_on_start() -> None:
    queue = InMemoryJobQueue()
    scheduler = NewsScheduler(queue)
    scheduler.start()
    try:
        scheduler.schedule_news_update(10)
        for _ in range(100):
            if len(queue):
                break
            await asyncio.sleep(0.02)
    finally:
        scheduler.shutdown()

    assert len(queue) == 1
    job = await queue.reserve(60)
    assert job.name == JOB_FETCH_NEWS
    assert job.data == {"trigger": "scheduled"}


@pytest.mark.asyncio
async def test_manual_trigger_uses_settings_defaults_and_overrides() -> None:
    queue = InMemoryJobQueue()
    scheduler = NewsScheduler.from_settings(Settings(job_attempts=3, job_backoff_seconds=5), queue)

    job = await scheduler.add_news_update_job()
    assert job.options.attempts == 3
    assert job.options.backoff_seconds == 5
    assert job.data == {"trigger": "manual"}

    override = await scheduler.add_news_update_job(attempts=1)
    assert override.options.attempts == 1
    assert scheduler.job_options.attempts == 3


@pytest.mark.asyncio
async def test_degraded_scheduler_skips_recurring_but_acknowledges_manual() -> None:
    scheduler = NewsScheduler(NoOpJobQueue())

    assert scheduler.schedule_news_update(10) is None
    scheduler.start()
    assert scheduler.running is False
    assert scheduler.scheduled_jobs() == []

    job = await scheduler.add_news_update_job()
    assert job.acknowledged_only is True
