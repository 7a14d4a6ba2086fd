from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fakeredis import FakeRedis
from redis.exceptions import ConnectionError as RedisConnectionError
from rq import SimpleWorker
from rq.job import Job as RqJob

from helpers import FakeClock
from patrika.core.config import Settings
from patrika.core.exceptions import BrokerUnavailableError
from patrika.jobs.queue import (
    JOB_FETCH_NEWS,
    InMemoryJobQueue,
    JobOptions,
    JobState,
    NoOpJobQueue,
    RedisJobQueue,
    build_job_queue,
)

ATTEMPTS: list[dict[str, Any]] = []


def flaky_fetch(data: dict[str, Any]) -> dict[str, Any]:
    ATTEMPTS.append(data)
    if len(ATTEMPTS) < 3:
        raise RuntimeError("transient failure")
    return {"success": True, "newItems": 1}


def failing_fetch(data: dict[str, Any]) -> dict[str, Any]:
    ATTEMPTS.append(data)
    raise RuntimeError("feed down")


@pytest.fixture
def connection() -> FakeRedis:
    ATTEMPTS.clear()
    connection = FakeRedis()
    connection.flushall()
    return connection


def test_backoff_doubles_per_attempt() -> None:
    options = JobOptions(attempts=3, backoff_seconds=5)
    assert [options.backoff_for(n) for n in (1, 2, 3)] == [5, 10, 20]
    assert options.retry_intervals() == [5, 10]



@pytest.mark.asyncio
async def test_reserve_and_complete_removes_job() -> None:
    queue = InMemoryJobQueue()
    completed: list[tuple[str, object]] = []
    queue.on("completed", lambda job, result: completed.append((job.id, result)))

    job = await queue.enqueue(JOB_FETCH_NEWS, {"trigger": "manual"})
    reserved = await queue.reserve(lock_seconds=60)
    assert reserved is job
    assert reserved.state is JobState.ACTIVE
    assert await queue.reserve(lock_seconds=60) is None

    assert await queue.get_job(job.id) is job
    await queue.complete(reserved, {"success": True})

    assert len(queue) == 0
    assert await queue.get_job(job.id) is None
    assert completed == [(job.id, {"success": True})]


@pytest.mark.asyncio
async def test_failed_job_retries_with_exponential_backoff_then_is_discarded() -> None:
    clock = FakeClock()
    queue = InMemoryJobQueue(clock=clock)
    failures: list[str] = []
    queue.on("failed", lambda job, error: failures.append(error))
    job = await queue.enqueue(JOB_FETCH_NEWS, options=JobOptions(attempts=3, backoff_seconds=5))

    reserved = await queue.reserve(60)
    assert await queue.fail(reserved, RuntimeError("feed down")) is JobState.QUEUED
    assert job.ready_at == clock.now + 5
    clock.advance(4.9)
    assert await queue.reserve(60) is None
    clock.advance(0.1)

    reserved = await queue.reserve(60)
    assert reserved is job
    assert await queue.fail(reserved, RuntimeError("feed down")) is JobState.QUEUED
    assert job.ready_at == clock.now + 10
    clock.advance(10)

    reserved = await queue.reserve(60)
    assert await queue.fail(reserved, RuntimeError("still down")) is JobState.FAILED
    assert job.attempts_made == 3
    assert len(queue) == 0
    assert failures == ["still down"]


@pytest.mark.asyncio
async def test_expired_lock_is_recovered_as_stalled() -> None:
    clock = FakeClock()
    queue = InMemoryJobQueue(clock=clock, max_stalled_count=2)
    stalled: list[str] = []
    queue.on("stalled", lambda job, _: stalled.append(job.id))
    job = await queue.enqueue(JOB_FETCH_NEWS)

    for expected in (1, 2):
        await queue.reserve(lock_seconds=60)
        clock.advance(61)
        assert await queue.recover_stalled() == [job.id]
        assert job.state is JobState.QUEUED
        assert job.stalled_count == expected

    await queue.reserve(lock_seconds=60)
    clock.advance(61)
    await queue.recover_stalled()
    assert job.state is JobState.FAILED
    assert len(queue) == 0
    assert stalled == [job.id, job.id, job.id]


@pytest.mark.asyncio
async def test_extend_lock_prevents_stall() -> None:
    clock = FakeClock()
    queue = InMemoryJobQueue(clock=clock)
    await queue.enqueue(JOB_FETCH_NEWS)
    job = await queue.reserve(lock_seconds=60)

    clock.advance(30)
    assert await queue.extend_lock(job, 60) is True
    clock.advance(45)
    assert await queue.recover_stalled() == []


@pytest.mark.asyncio
async def test_noop_queue_acknowledges_without_work() -> None:
    queue = NoOpJobQueue()
    job = await queue.enqueue(JOB_FETCH_NEWS)

    assert queue.degraded is True
    assert job.acknowledged_only is True
    assert job.id.startswith("noop-")
    assert await queue.get_job(job.id) is None


@pytest.mark.asyncio
async def test_build_job_queue_selects_backend() -> None:
    assert isinstance(await build_job_queue(Settings(queue_backend="none")), NoOpJobQueue)
    assert isinstance(await build_job_queue(Settings(queue_backend="memory")), InMemoryJobQueue)

    with patch("patrika.jobs.queue.build_sync_redis_client", return_value=FakeRedis()):
        queue = await build_job_queue(Settings(queue_backend="redis", queue_name="headlines", job_timeout_seconds=120))
    assert isinstance(queue, RedisJobQueue)
    assert queue.rq_queue.name == "headlines"
    assert queue.job_timeout_seconds == 120


@pytest.mark.asyncio
async def test_build_job_queue_degrades_when_redis_is_down() -> None:
    unreachable = MagicMock()
    unreachable.ping.side_effect = RedisConnectionError("refused")
    with patch("patrika.jobs.queue.build_sync_redis_client", return_value=unreachable):
        queue = await build_job_queue(Settings(queue_backend="redis"))

    assert isinstance(queue, NoOpJobQueue)
    unreachable.close.assert_called_once()


def test_retry_policy_follows_job_options() -> None:
    retry = RedisJobQueue.retry_policy(JobOptions(attempts=3, backoff_seconds=5))
    assert retry is not None
    assert retry.max == 2
    assert retry.intervals == [5, 10]
    assert RedisJobQueue.retry_policy(JobOptions(attempts=1)) is None


@pytest.mark.asyncio
async def test_redis_queue_enqueues_rq_job_with_retry_and_removal(connection: FakeRedis) -> None:
    queue = RedisJobQueue(connection, "news", job_timeout_seconds=600)
    job = await queue.enqueue(JOB_FETCH_NEWS, {"trigger": "manual"})

    rq_job = RqJob.fetch(job.id, connection=connection)
    assert rq_job.func_name == "patrika.jobs.tasks.fetch_news"
    assert list(rq_job.args) == [{"trigger": "manual"}]
    assert rq_job.retries_left == 2
    assert rq_job.retry_intervals == [5, 10]
    assert rq_job.result_ttl == 0
    assert rq_job.failure_ttl == 0
    assert rq_job.timeout == 600
    assert queue.rq_queue.count == 1

    fetched = await queue.get_job(job.id)
    assert fetched is not None
    assert fetched.state is JobState.QUEUED
    assert fetched.name == JOB_FETCH_NEWS
    assert fetched.data == {"trigger": "manual"}
    assert fetched.progress == 0


@pytest.mark.asyncio
async def test_redis_queue_rejects_unknown_job(connection: FakeRedis) -> None:
    queue = RedisJobQueue(connection)
    with pytest.raises(ValueError):
        await queue.enqueue("rebuild-index")


@pytest.mark.asyncio
async def test_rq_worker_retries_until_success_then_removes_job(connection: FakeRedis) -> None:
    connection.set("news:cat=*:page=1:limit=10", "{}")
    connection.set("fallback:news:cat=*:page=1:limit=10", "{}")
    queue = RedisJobQueue(connection, "news", tasks={JOB_FETCH_NEWS: flaky_fetch})
    job = await queue.enqueue(JOB_FETCH_NEWS, {"trigger": "manual"}, JobOptions(attempts=3, backoff_seconds=0))

    SimpleWorker([queue.rq_queue], connection=connection).work(burst=True)

    assert ATTEMPTS == [{"trigger": "manual"}] * 3
    assert await queue.get_job(job.id) is None
    assert queue.rq_queue.count == 0
    # success callback cleared cached pages but kept the fallback copy
    assert connection.exists("news:cat=*:page=1:limit=10") == 0
    assert connection.exists("fallback:news:cat=*:page=1:limit=10") == 1


@pytest.mark.asyncio
async def test_rq_worker_gives_up_after_all_attempts(connection: FakeRedis) -> None:
    queue = RedisJobQueue(connection, "news", tasks={JOB_FETCH_NEWS: failing_fetch})
    job = await queue.enqueue(JOB_FETCH_NEWS, options=JobOptions(attempts=3, backoff_seconds=0))

    SimpleWorker([queue.rq_queue], connection=connection).work(burst=True)

    assert len(ATTEMPTS) == 3
    assert queue.rq_queue.count == 0
    assert await queue.get_job(job.id) is None


@pytest.mark.asyncio
async def test_redis_queue_ping_failure_raises_broker_unavailable(connection: FakeRedis) -> None:
    queue = RedisJobQueue(connection)
    with patch.object(connection, "ping", side_effect=RedisConnectionError("refused")):
        with pytest.raises(BrokerUnavailableError):
            await queue.ping()
