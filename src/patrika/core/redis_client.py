from __future__ import annotations

import logging

import redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from patrika.core.config import Settings

LOGGER = logging.getLogger(__name__)


def build_redis_client(settings: Settings) -> Redis:
    return Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )


def build_sync_redis_client(settings: Settings) -> redis.Redis:
    # rq stores pickled payloads, so responses stay as bytes
    return redis.Redis.from_url(settings.redis_url, socket_connect_timeout=5)


async def connect_redis(settings: Settings) -> Redis | None:
    """Return a connected client, or None when Redis does not answer a ping."""
    client = build_redis_client(settings)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        LOGGER.warning("Redis unavailable at %s: %s", settings.redis_url, exc)
        await client.aclose()
        return None
    return client
