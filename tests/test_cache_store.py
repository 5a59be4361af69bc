"""
tests/test_cache_store.py

Backend behaviour for the in-memory and Redis cache stores.

The Redis store is exercised against a small in-process double of the
redis client so no server is needed.
"""

from __future__ import annotations

import pytest
import redis

from app.cache.store import (
    CacheUnavailableError,
    InMemoryCacheStore,
    RedisCacheStore,
    build_cache_store,
)
from app.config import CacheSettings


class FakePipeline:
    def __init__(self, client: "FakeRedis") -> None:
        self._client = client
        self._ops: list[tuple[str, tuple]] = []

    def incr(self, key: str) -> None:
        self._ops.append(("incr", (key,)))

    def expire(self, key: str, seconds: int) -> None:
        self._ops.append(("expire", (key, seconds)))

    def execute(self) -> list:
        self._client.check()
        results = []
        for name, args in self._ops:
            results.append(getattr(self._client, name)(*args))
        return results


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiries: dict[str, int] = {}
        self.down = False

    def check(self) -> None:
        if self.down:
            raise redis.ConnectionError("connection refused")

    def mget(self, keys: list[str]) -> list[str | None]:
        self.check()
        return [self.data.get(key) for key in keys]

    def set(self, key: str, value: str, px: int) -> bool:
        self.check()
        self.data[key] = value
        self.expiries[key] = px
        return True

    def delete(self, key: str) -> int:
        self.check()
        return 1 if self.data.pop(key, None) is not None else 0

    def incr(self, key: str) -> int:
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        return value

    def expire(self, key: str, seconds: int) -> bool:
        self.expiries[key] = seconds
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def ping(self) -> bool:
        self.check()
        return True


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class TestInMemoryCacheStore:
    def test_set_get_expire(self, cache_store: InMemoryCacheStore, clock) -> None:
        cache_store.set("k", "v", ttl_seconds=10)
        assert cache_store.get_many(["k", "missing"]) == ["v", None]

        clock.advance(10)
        assert cache_store.get_many(["k"]) == [None]

    def test_incr_starts_at_one(self, cache_store: InMemoryCacheStore) -> None:
        assert cache_store.incr("ver", ttl_seconds=60) == 1
        assert cache_store.incr("ver", ttl_seconds=60) == 2
        assert cache_store.get_many(["ver"]) == ["2"]

    def test_delete(self, cache_store: InMemoryCacheStore) -> None:
        cache_store.set("k", "v", ttl_seconds=10)
        cache_store.delete("k")
        cache_store.delete("k")
        assert cache_store.get_many(["k"]) == [None]

    def test_unavailable_raises(self, cache_store: InMemoryCacheStore) -> None:
        cache_store.available = False
        with pytest.raises(CacheUnavailableError):
            cache_store.get_many(["k"])
        assert cache_store.ping() is False


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class TestRedisCacheStore:
    @pytest.fixture()
    def fake(self) -> FakeRedis:
        return FakeRedis()

    @pytest.fixture()
    def store(self, fake: FakeRedis) -> RedisCacheStore:
        return RedisCacheStore(url="redis://unused", socket_timeout_seconds=0.1, client=fake)

    def test_round_trip(self, store: RedisCacheStore, fake: FakeRedis) -> None:
        store.set("k", "v", ttl_seconds=1.5)

        assert store.get_many(["k", "other"]) == ["v", None]
        assert fake.expiries["k"] == 1500

    def test_incr_refreshes_ttl(self, store: RedisCacheStore, fake: FakeRedis) -> None:
        assert store.incr("ver", ttl_seconds=600) == 1
        assert store.incr("ver", ttl_seconds=600) == 2
        assert fake.expiries["ver"] == 600

    @pytest.mark.parametrize(
        "call",
        [
            lambda store: store.get_many(["k"]),
            lambda store: store.set("k", "v", ttl_seconds=1),
            lambda store: store.delete("k"),
            lambda store: store.incr("k", ttl_seconds=1),
        ],
    )
    def test_errors_become_cache_unavailable(self, store: RedisCacheStore, fake: FakeRedis, call) -> None:
        fake.down = True
        with pytest.raises(CacheUnavailableError):
            call(store)

    def test_ping(self, store: RedisCacheStore, fake: FakeRedis) -> None:
        assert store.ping() is True
        fake.down = True
        assert store.ping() is False


def test_build_cache_store_memory() -> None:
    assert isinstance(build_cache_store(CacheSettings(backend="memory")), InMemoryCacheStore)


def test_build_cache_store_redis() -> None:
    store = build_cache_store(CacheSettings(backend="redis", redis_url="redis://localhost:6379/0"))
    assert isinstance(store, RedisCacheStore)
