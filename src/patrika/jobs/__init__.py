"""Background ingestion: job queue backends, the recurring scheduler and the worker."""

from patrika.jobs.queue import (
    JOB_FETCH_NEWS,
    BaseJobQueue,
    InMemoryJobQueue,
    Job,
    JobOptions,
    JobState,
    NoOpJobQueue,
    RedisJobQueue,
    build_job_queue,
)
from patrika.jobs.scheduler import NewsScheduler
from patrika.jobs.worker import DetachedWorker, NewsWorker, NoOpWorker, build_worker, run_rq_worker

__all__ = [
    "JOB_FETCH_NEWS",
    "BaseJobQueue",
    "DetachedWorker",
    "InMemoryJobQueue",
    "Job",
    "JobOptions",
    "JobState",
    "NewsScheduler",
    "NewsWorker",
    "NoOpJobQueue",
    "NoOpWorker",
    "RedisJobQueue",
    "build_job_queue",
    "build_worker",
    "run_rq_worker",
]
