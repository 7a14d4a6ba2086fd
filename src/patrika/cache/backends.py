from __future__ import annotations

import fnmatch
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

LOGGER = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Key-value cache with per-key TTL. Failures degrade to a miss or a no-op."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        raise NotImplementedError


class MemoryCacheBackend(CacheBackend):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        # values are stored serialized so callers never share mutable payloads
        self._entries: dict[str, tuple[float, str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return json.loads(raw)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        now = self._clock()
        self._purge_expired(now)
        self._entries[key] = (now + ttl_seconds, json.dumps(value))
        return True

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in keys:
            del self._entries[key]
        return len(keys)


class RedisCacheBackend(CacheBackend):
    def __init__(self, client: Redis) -> None:
        self._client = client

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            LOGGER.warning("Cache get failed for %s: %s", key, exc)
            return None
        if raw is None:
            LOGGER.debug("Cache miss for key: %s", key)
            return None
        try:
            return json.loads(raw)
        except ValueError:
            LOGGER.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl_seconds)
        except RedisError as exc:
            LOGGER.warning("Cache set failed for %s: %s", key, exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except RedisError as exc:
            LOGGER.warning("Cache delete failed for %s: %s", key, exc)
            return False

    async def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        batch: list[str] = []
        try:
            async for key in self._client.scan_iter(match=pattern, count=100):
                batch.append(key)
                if len(batch) >= 100:
                    deleted += await self._client.delete(*batch)
                    batch.clear()
            if batch:
                deleted += await self._client.delete(*batch)
        except RedisError as exc:
            LOGGER.warning("Cache pattern clear failed for %s: %s", pattern, exc)
        if deleted:
            LOGGER.info("Deleted %d keys matching pattern: %s", deleted, pattern)
        return deleted
