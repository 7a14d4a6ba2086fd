from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from patrika.core.config import Settings
from patrika.jobs.queue import JOB_FETCH_NEWS, BaseJobQueue, Job, JobOptions

LOGGER = logging.getLogger(__name__)


def default_job_options(settings: Settings) -> JobOptions:
    return JobOptions(attempts=settings.job_attempts, backoff_seconds=settings.job_backoff_seconds)


class NewsScheduler:
    """Owns the recurring `fetch-news` trigger and manual enqueues.

    There is exactly one recurring registration; scheduling again replaces it.
    """

    def __init__(
        self,
        queue: BaseJobQueue,
        *,
        job_options: JobOptions | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.queue = queue
        self.job_options = job_options or JobOptions()
        self._scheduler = scheduler or AsyncIOScheduler(timezone=UTC)

    @classmethod
    def from_settings(cls, settings: Settings, queue: BaseJobQueue) -> NewsScheduler:
        return cls(queue, job_options=default_job_options(settings))

    @property
    def degraded(self) -> bool:
        return self.queue.degraded

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if self.degraded:
            LOGGER.warning("Scheduler not started: job queue is unavailable")
            return
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def scheduled_jobs(self) -> list[Any]:
        return self._scheduler.get_jobs()

    def schedule_news_update(self, interval_minutes: int = 10) -> Any | None:
        if self.degraded:
            LOGGER.warning("Recurring news update not scheduled: job queue is unavailable")
            return None

        existing = self._scheduler.get_job(JOB_FETCH_NEWS)
        if existing is not None:
            existing.remove()
            LOGGER.info("Removed existing recurring %s job", JOB_FETCH_NEWS)

        scheduled = self._scheduler.add_job(
            self._enqueue_scheduled,
            "interval",
            minutes=interval_minutes,
            id=JOB_FETCH_NEWS,
            name=JOB_FETCH_NEWS,
            next_run_time=datetime.now(UTC),
            coalesce=True,
            max_instances=1,
        )
        LOGGER.info("News update job scheduled every %d minutes", interval_minutes)
        return scheduled

    async def add_news_update_job(self, **overrides: Any) -> Job:
        options = replace(self.job_options, **overrides)
        job = await self.queue.enqueue(JOB_FETCH_NEWS, {"trigger": "manual"}, options)
        LOGGER.info("Manual news update requested: job %s", job.id)
        return job

    async def _enqueue_scheduled(self) -> None:
        try:
            await self.queue.enqueue(JOB_FETCH_NEWS, {"trigger": "scheduled"}, self.job_options)
        except Exception as exc:
            LOGGER.warning("Scheduled news update could not be enqueued: %s", exc)
