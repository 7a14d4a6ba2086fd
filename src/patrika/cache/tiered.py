from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from patrika.cache.backends import CacheBackend

LOGGER = logging.getLogger(__name__)

KEY_PREFIX = "news:"
FALLBACK_PREFIX = "fallback:"


def build_query_key(categories: Sequence[str] | None, page: int, limit: int) -> str:
    scope = ",".join(sorted(set(categories))) if categories else "*"
    return f"{KEY_PREFIX}cat={scope}:page={page}:limit={limit}"


class TieredCache:
    """Short-lived read cache plus a longer-lived copy kept for store outages.

    Both tiers are written together, and only after a successful store read.
    """

    def __init__(
        self,
        fast: CacheBackend,
        fallback: CacheBackend,
        *,
        fast_ttl_seconds: int = 300,
        fallback_ttl_seconds: int = 1800,
    ) -> None:
        self.fast = fast
        self.fallback = fallback
        self.fast_ttl_seconds = fast_ttl_seconds
        self.fallback_ttl_seconds = fallback_ttl_seconds

    async def get_fast(self, key: str) -> dict[str, Any] | None:
        payload = await self.fast.get(key)
        if payload is not None:
            LOGGER.debug("Fast cache hit for key: %s", key)
        return payload

    async def get_fallback(self, key: str) -> dict[str, Any] | None:
        return await self.fallback.get(FALLBACK_PREFIX + key)

    async def store(self, key: str, payload: dict[str, Any]) -> None:
        await self.fast.set(key, payload, self.fast_ttl_seconds)
        await self.fallback.set(FALLBACK_PREFIX + key, payload, self.fallback_ttl_seconds)

    async def invalidate(self, pattern: str = f"{KEY_PREFIX}*") -> int:
        """Drop fast entries; fallback entries are kept for outages."""
        return await self.fast.delete_pattern(pattern)
