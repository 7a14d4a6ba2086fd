"""Read-side caching: key-value backends and the fast/fallback tiered cache."""

from patrika.cache.backends import CacheBackend, MemoryCacheBackend, RedisCacheBackend
from patrika.cache.tiered import TieredCache, build_query_key

__all__ = ["CacheBackend", "MemoryCacheBackend", "RedisCacheBackend", "TieredCache", "build_query_key"]
