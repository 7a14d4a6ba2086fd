from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from rq import Queue, Worker

from patrika.core.config import Settings
from patrika.core.redis_client import build_sync_redis_client
from patrika.jobs.queue import BaseJobQueue, InMemoryJobQueue, Job

LOGGER = logging.getLogger(__name__)

JobProcessor = Callable[[Job], Awaitable[Any]]


class NewsWorker:
    """Processes one job at a time, holding and renewing its lock while it runs.

    Processor exceptions go to the queue, which decides between a delayed
    retry and a terminal failure.
    """

    def __init__(
        self,
        queue: InMemoryJobQueue,
        processor: JobProcessor,
        *,
        lock_seconds: float = 60.0,
        lock_renew_seconds: float = 30.0,
        poll_seconds: float = 1.0,
    ) -> None:
        self.queue = queue
        self.processor = processor
        self.lock_seconds = lock_seconds
        self.lock_renew_seconds = lock_renew_seconds
        self.poll_seconds = poll_seconds

        queue.on("completed", self._log_completed)
        queue.on("failed", self._log_failed)
        queue.on("stalled", self._log_stalled)

    @staticmethod
    def _log_completed(job: Job, result: Any) -> None:
        LOGGER.info("Job %s completed: %s", job.id, result)

    @staticmethod
    def _log_failed(job: Job, error: Any) -> None:
        LOGGER.error("Job %s failed: %s", job.id, error)

    @staticmethod
    def _log_stalled(job: Job, _: Any) -> None:
        LOGGER.warning("Job %s stalled", job.id)

    async def _renew_lock(self, job: Job) -> None:
        while True:
            await asyncio.sleep(self.lock_renew_seconds)
            if not await self.queue.extend_lock(job, self.lock_seconds):
                LOGGER.warning("Lost lock on job %s", job.id)
                return

    async def run_once(self) -> Job | None:
        await self.queue.recover_stalled()
        job = await self.queue.reserve(self.lock_seconds)
        if job is None:
            return None

        LOGGER.info("Processing job %s (%s), attempt %d", job.id, job.name, job.attempts_made + 1)
        renewer = asyncio.create_task(self._renew_lock(job))
        error: Exception | None = None
        result: Any = None
        try:
            await self.queue.update_progress(job, 10)
            result = await self.processor(job)
            await self.queue.update_progress(job, 100)
        except Exception as exc:
            error = exc
        finally:
            renewer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await renewer

        if error is not None:
            await self.queue.fail(job, error)
        else:
            await self.queue.complete(job, result)
        return job

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        LOGGER.info("Worker started on queue %s", self.queue.name)
        while not stop_event.is_set():
            try:
                job = await self.run_once()
            except Exception as exc:
                LOGGER.warning("Worker loop error: %s", exc)
                job = None
            if job is None:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_seconds)
        LOGGER.info("Worker stopped")


class NoOpWorker:
    """Worker used while the job queue is unavailable; never processes anything."""

    def __init__(self, queue: BaseJobQueue) -> None:
        self.queue = queue

    async def run_once(self) -> Job | None:
        return None

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        LOGGER.warning("Worker idle: job queue is unavailable")
        await stop_event.wait()


class DetachedWorker(NoOpWorker):
    """In-process placeholder when jobs run in separate `patrika worker` processes."""

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        LOGGER.info("Jobs on queue %s are processed by `patrika worker`", self.queue.name)
        await stop_event.wait()


def build_worker(settings: Settings, queue: BaseJobQueue, processor: JobProcessor) -> NewsWorker | NoOpWorker:
    if queue.degraded:
        return NoOpWorker(queue)
    if not isinstance(queue, InMemoryJobQueue):
        return DetachedWorker(queue)
    return NewsWorker(
        queue,
        processor,
        lock_seconds=settings.worker_lock_seconds,
        lock_renew_seconds=settings.worker_lock_renew_seconds,
        poll_seconds=settings.worker_poll_seconds,
    )


def run_rq_worker(settings: Settings, *, burst: bool = False) -> bool:
    """Consume the Redis queue in this process until stopped (or drained, with `burst`).

    The rq worker heartbeats every `worker_lock_renew_seconds` and re-queues
    jobs left in the started registry by workers that died mid-run.
    """
    connection = build_sync_redis_client(settings)
    worker = Worker(
        [Queue(settings.queue_name, connection=connection)],
        connection=connection,
        job_monitoring_interval=max(1, int(settings.worker_lock_renew_seconds)),
    )
    LOGGER.info("rq worker %s listening on queue %s", worker.name, settings.queue_name)
    return worker.work(burst=burst, with_scheduler=True, logging_level=settings.log_level)
