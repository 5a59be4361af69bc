"""
app/cache package marker.
"""

from app.cache.coordinator import CacheCoordinator, CacheEntry, get_cache_coordinator
from app.cache.store import (
    CacheStore,
    CacheUnavailableError,
    InMemoryCacheStore,
    RedisCacheStore,
    build_cache_store,
)

__all__ = [
    "CacheCoordinator",
    "CacheEntry",
    "CacheStore",
    "CacheUnavailableError",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "build_cache_store",
    "get_cache_coordinator",
]
