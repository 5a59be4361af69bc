"""
app/cache/store.py

Key-value cache backends with TTL and an atomic version counter.

The coordinator only needs five primitives, so a backend is small:
``get_many``, ``set``, ``delete``, ``incr`` and ``ping``. Every backend failure
is raised as ``CacheUnavailableError`` so callers can degrade uniformly.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import redis

from app.config import CacheSettings


class CacheUnavailableError(RuntimeError):
    """
    Raised when the cache backend cannot serve a call.
    """


class CacheStore(ABC):
    """
    Backend interface used by the cache coordinator.
    """

    @abstractmethod
    def get_many(self, keys: Sequence[str]) -> list[str | None]:
        """Return raw values for ``keys`` (``None`` where absent or expired)."""

    @abstractmethod
    def set(self, key: str, value: str, *, ttl_seconds: float) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def incr(self, key: str, *, ttl_seconds: float) -> int:
        """Atomically increment the integer at ``key`` and refresh its TTL."""

    def ping(self) -> bool:
        return True


@dataclass
class _StoredValue:
    value: str
    expires_at: float


class InMemoryCacheStore(CacheStore):
    """
    Thread-safe in-process backend. Suitable for a single instance and tests.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._items: dict[str, _StoredValue] = {}
        self._lock = threading.Lock()
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise CacheUnavailableError("in-memory cache marked unavailable")

    def _live(self, key: str, now: float) -> _StoredValue | None:
        item = self._items.get(key)
        if item is None:
            return None
        if item.expires_at <= now:
            del self._items[key]
            return None
        return item

    def get_many(self, keys: Sequence[str]) -> list[str | None]:
        self._check_available()
        with self._lock:
            now = self._clock()
            values: list[str | None] = []
            for key in keys:
                item = self._live(key, now)
                values.append(item.value if item is not None else None)
            return values

    def set(self, key: str, value: str, *, ttl_seconds: float) -> None:
        self._check_available()
        with self._lock:
            self._items[key] = _StoredValue(value=value, expires_at=self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        self._check_available()
        with self._lock:
            self._items.pop(key, None)

    def incr(self, key: str, *, ttl_seconds: float) -> int:
        self._check_available()
        with self._lock:
            now = self._clock()
            item = self._live(key, now)
            current = int(item.value) if item is not None else 0
            next_value = current + 1
            self._items[key] = _StoredValue(value=str(next_value), expires_at=now + ttl_seconds)
            return next_value

    def ping(self) -> bool:
        return self.available


class RedisCacheStore(CacheStore):
    """
    Redis-backed cache shared by every service instance.
    """

    def __init__(
        self,
        *,
        url: str,
        socket_timeout_seconds: float,
        client: redis.Redis | None = None,
    ) -> None:
        self._client = client or redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
            decode_responses=True,
        )

    def get_many(self, keys: Sequence[str]) -> list[str | None]:
        try:
            return list(self._client.mget(list(keys)))
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"redis MGET failed: {exc}") from exc

    def set(self, key: str, value: str, *, ttl_seconds: float) -> None:
        try:
            self._client.set(key, value, px=max(1, int(ttl_seconds * 1000)))
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"redis SET failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"redis DEL failed: {exc}") from exc

    def incr(self, key: str, *, ttl_seconds: float) -> int:
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, max(1, int(ttl_seconds)))
            new_value, _ = pipe.execute()
            return int(new_value)
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"redis INCR failed: {exc}") from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False


def build_cache_store(settings: CacheSettings) -> CacheStore:
    """
    Build the backend named by ``settings.backend``.
    """

    if settings.backend == "redis":
        return RedisCacheStore(
            url=settings.redis_url,
            socket_timeout_seconds=settings.socket_timeout_seconds,
        )
    return InMemoryCacheStore()
