from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from typing import Any, ClassVar

from redis import Redis
from redis.exceptions import RedisError
from rq import Callback, Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job as RqJob

from patrika.core.config import Settings
from patrika.core.exceptions import BrokerUnavailableError
from patrika.core.redis_client import build_sync_redis_client
from patrika.jobs.tasks import clear_cached_pages, fetch_news

LOGGER = logging.getLogger(__name__)

JOB_FETCH_NEWS = "fetch-news"

JobListener = Callable[["Job", Any], Any]

TASKS: dict[str, Callable[..., Any]] = {JOB_FETCH_NEWS: fetch_news}


class JobState(StrEnum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


# rq statuses folded onto the states callers care about
_RQ_STATES: dict[str, JobState] = {
    "queued": JobState.QUEUED,
    "scheduled": JobState.QUEUED,
    "deferred": JobState.QUEUED,
    "started": JobState.ACTIVE,
    "finished": JobState.COMPLETED,
    "failed": JobState.FAILED,
    "stopped": JobState.FAILED,
    "canceled": JobState.FAILED,
}


@dataclass(slots=True)
class JobOptions:
    attempts: int = 3
    backoff_seconds: float = 5.0
    delay_seconds: float = 0.0
    remove_on_complete: bool = True
    remove_on_fail: bool = True

    def backoff_for(self, attempts_made: int) -> float:
        """Exponential delay before the retry that follows attempt `attempts_made`."""
        return self.backoff_seconds * (2 ** max(attempts_made - 1, 0))

    def retry_intervals(self) -> list[float]:
        return [self.backoff_for(attempt) for attempt in range(1, self.attempts)]


@dataclass(slots=True)
class Job:
    id: str
    name: str
    data: dict[str, Any]
    options: JobOptions
    enqueued_at: float
    ready_at: float
    state: JobState = JobState.QUEUED
    attempts_made: int = 0
    stalled_count: int = 0
    progress: int = 0
    last_error: str | None = None
    result: Any = None
    lock_token: str | None = None
    lock_expires_at: float | None = None
    acknowledged_only: bool = False


class BaseJobQueue(ABC):
    """Producer side of the task queue, shared by the scheduler and the service.

    Listeners registered with `on` receive `completed`, `failed` and `stalled`
    events for jobs processed in this process.
    """

    degraded: ClassVar[bool] = False

    def __init__(self, name: str = "news", *, clock: Callable[[], float] = time.time) -> None:
        self.name = name
        self._clock = clock
        self._listeners: dict[str, list[JobListener]] = {}

    def on(self, event: str, listener: JobListener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    async def _emit(self, event: str, job: Job, detail: Any = None) -> None:
        for listener in self._listeners.get(event, []):
            try:
                outcome = listener(job, detail)
                if hasattr(outcome, "__await__"):
                    await outcome
            except Exception as exc:
                LOGGER.warning("Queue listener for %s failed on job %s: %s", event, job.id, exc)

    def _new_job(self, name: str, data: dict[str, Any] | None, options: JobOptions) -> Job:
        now = self._clock()
        return Job(
            id=uuid.uuid4().hex,
            name=name,
            data=dict(data or {}),
            options=options,
            enqueued_at=now,
            ready_at=now + options.delay_seconds,
        )

    @abstractmethod
    async def enqueue(self, name: str, data: dict[str, Any] | None = None, options: JobOptions | None = None) -> Job:
        raise NotImplementedError

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        raise NotImplementedError

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


class InMemoryJobQueue(BaseJobQueue):
    """Single-process broker for local runs without Redis.

    Jobs move queued -> active -> completed, or back to queued after a failed
    attempt with exponential backoff, until `options.attempts` is exhausted.
    An active job whose lock lapses is treated as stalled and re-queued.
    """

    def __init__(
        self,
        name: str = "news",
        *,
        max_stalled_count: int = 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, clock=clock)
        self.max_stalled_count = max_stalled_count
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def _activate(self, job: Job, lock_seconds: float) -> None:
        job.state = JobState.ACTIVE
        job.lock_token = uuid.uuid4().hex
        job.lock_expires_at = self._clock() + lock_seconds

    def _release(self, job: Job) -> None:
        job.lock_token = None
        job.lock_expires_at = None

    def _record_failure(self, job: Job, error: BaseException | str) -> JobState:
        job.attempts_made += 1
        job.last_error = str(error)
        self._release(job)
        if job.attempts_made < job.options.attempts:
            delay = job.options.backoff_for(job.attempts_made)
            job.state = JobState.QUEUED
            job.ready_at = self._clock() + delay
            LOGGER.warning(
                "Job %s attempt %d/%d failed; retrying in %.1fs: %s",
                job.id,
                job.attempts_made,
                job.options.attempts,
                delay,
                job.last_error,
            )
        else:
            job.state = JobState.FAILED
            LOGGER.error(
                "Job %s failed permanently after %d attempts: %s", job.id, job.attempts_made, job.last_error
            )
        return job.state

    def _record_stall(self, job: Job) -> JobState:
        job.stalled_count += 1
        self._release(job)
        if job.stalled_count > self.max_stalled_count:
            job.state = JobState.FAILED
            job.last_error = f"job stalled more than {self.max_stalled_count} times"
            LOGGER.error("Job %s exceeded the stalled limit and was discarded", job.id)
        else:
            job.state = JobState.QUEUED
            job.ready_at = self._clock()
            LOGGER.warning("Job %s has stalled and will be reprocessed", job.id)
        return job.state

    async def enqueue(self, name: str, data: dict[str, Any] | None = None, options: JobOptions | None = None) -> Job:
        job = self._new_job(name, data, options or JobOptions())
        self._jobs[job.id] = job
        LOGGER.info("Enqueued job %s (%s)", job.id, name)
        return job

    async def reserve(self, lock_seconds: float) -> Job | None:
        now = self._clock()
        ready = [job for job in self._jobs.values() if job.state is JobState.QUEUED and job.ready_at <= now]
        if not ready:
            return None
        job = min(ready, key=lambda candidate: (candidate.ready_at, candidate.enqueued_at))
        self._activate(job, lock_seconds)
        return job

    async def extend_lock(self, job: Job, lock_seconds: float) -> bool:
        stored = self._jobs.get(job.id)
        if stored is None or stored.state is not JobState.ACTIVE or stored.lock_token != job.lock_token:
            return False
        stored.lock_expires_at = self._clock() + lock_seconds
        return True

    async def update_progress(self, job: Job, progress: int) -> None:
        job.progress = progress

    async def complete(self, job: Job, result: Any = None) -> None:
        job.state = JobState.COMPLETED
        job.result = result
        self._release(job)
        if job.options.remove_on_complete:
            self._jobs.pop(job.id, None)
        await self._emit("completed", job, result)

    async def fail(self, job: Job, error: BaseException | str) -> JobState:
        state = self._record_failure(job, error)
        if state is JobState.FAILED:
            if job.options.remove_on_fail:
                self._jobs.pop(job.id, None)
            await self._emit("failed", job, job.last_error)
        return state

    async def recover_stalled(self) -> list[str]:
        now = self._clock()
        stalled = [
            job
            for job in self._jobs.values()
            if job.state is JobState.ACTIVE and job.lock_expires_at is not None and job.lock_expires_at <= now
        ]
        for job in stalled:
            state = self._record_stall(job)
            await self._emit("stalled", job)
            if state is JobState.FAILED:
                if job.options.remove_on_fail:
                    self._jobs.pop(job.id, None)
                await self._emit("failed", job, job.last_error)
        return [job.id for job in stalled]

    async def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)


class RedisJobQueue(BaseJobQueue):
    """Broker backed by an rq queue.

    rq owns the retry schedule (`Retry` with exponential intervals), worker
    heartbeats and the started-job registry that re-queues work abandoned by a
    dead worker. Jobs run in `patrika worker` processes, and the success
    callback clears cached pages there, so no listener fires in this process.
    """

    def __init__(
        self,
        connection: Redis,
        name: str = "news",
        *,
        job_timeout_seconds: int = 900,
        tasks: Mapping[str, Callable[..., Any]] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, clock=clock)
        self.connection = connection
        self.rq_queue = Queue(name, connection=connection)
        self.job_timeout_seconds = job_timeout_seconds
        self.tasks = dict(tasks or TASKS)

    @staticmethod
    def retry_policy(options: JobOptions) -> Retry | None:
        if options.attempts < 2:
            return None
        return Retry(max=options.attempts - 1, interval=options.retry_intervals())

    def _submit(self, task: Callable[..., Any], job: Job) -> RqJob:
        options = job.options
        kwargs: dict[str, Any] = {
            "job_id": job.id,
            "description": job.name,
            "meta": {"name": job.name, "progress": 0},
            "retry": self.retry_policy(options),
            "job_timeout": self.job_timeout_seconds,
            "result_ttl": 0 if options.remove_on_complete else None,
            "failure_ttl": 0 if options.remove_on_fail else None,
            "on_success": Callback(clear_cached_pages),
        }
        if options.delay_seconds > 0:
            return self.rq_queue.enqueue_in(timedelta(seconds=options.delay_seconds), task, job.data, **kwargs)
        return self.rq_queue.enqueue(task, job.data, **kwargs)

    async def enqueue(self, name: str, data: dict[str, Any] | None = None, options: JobOptions | None = None) -> Job:
        task = self.tasks.get(name)
        if task is None:
            raise ValueError(f"No task registered for job {name!r}")

        job = self._new_job(name, data, options or JobOptions())
        try:
            await asyncio.to_thread(self._submit, task, job)
        except RedisError as exc:
            raise BrokerUnavailableError(f"Could not enqueue {name}: {exc}") from exc
        LOGGER.info("Enqueued job %s (%s) on rq queue %s", job.id, name, self.name)
        return job

    def _fetch(self, job_id: str) -> Job | None:
        try:
            rq_job = RqJob.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return None

        status = rq_job.get_status()
        enqueued_at = rq_job.enqueued_at.timestamp() if rq_job.enqueued_at else 0.0
        return Job(
            id=rq_job.id,
            name=rq_job.meta.get("name", rq_job.description or ""),
            data=dict(rq_job.args[0]) if rq_job.args else {},
            options=JobOptions(),
            enqueued_at=enqueued_at,
            ready_at=enqueued_at,
            state=_RQ_STATES.get(str(getattr(status, "value", status)), JobState.QUEUED),
            progress=int(rq_job.meta.get("progress", 0)),
        )

    async def get_job(self, job_id: str) -> Job | None:
        return await asyncio.to_thread(self._fetch, job_id)

    async def ping(self) -> None:
        try:
            await asyncio.to_thread(self.connection.ping)
        except (RedisError, OSError) as exc:
            raise BrokerUnavailableError(f"Redis broker unavailable: {exc}") from exc

    async def close(self) -> None:
        await asyncio.to_thread(self.connection.close)


class NoOpJobQueue(BaseJobQueue):
    """Stand-in used while the broker is unreachable.

    Enqueues are acknowledged with a synthetic job so callers keep working;
    nothing is ever handed to a worker.
    """

    degraded: ClassVar[bool] = True

    async def enqueue(self, name: str, data: dict[str, Any] | None = None, options: JobOptions | None = None) -> Job:
        job = self._new_job(name, data, options or JobOptions())
        job.id = f"noop-{job.id}"
        job.acknowledged_only = True
        LOGGER.warning("Job queue unavailable; acknowledged %s as %s without scheduling it", name, job.id)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        return None


async def build_job_queue(settings: Settings) -> BaseJobQueue:
    if settings.queue_backend == "none":
        LOGGER.warning("Background ingestion disabled (QUEUE_BACKEND=none)")
        return NoOpJobQueue(settings.queue_name)
    if settings.queue_backend == "memory":
        return InMemoryJobQueue(settings.queue_name, max_stalled_count=settings.max_stalled_count)

    connection = build_sync_redis_client(settings)
    try:
        await asyncio.to_thread(connection.ping)
    except (RedisError, OSError) as exc:
        LOGGER.warning("Continuing without background ingestion: job broker unavailable (%s)", exc)
        connection.close()
        return NoOpJobQueue(settings.queue_name)
    return RedisJobQueue(connection, settings.queue_name, job_timeout_seconds=settings.job_timeout_seconds)
