"""
app/cache/coordinator.py

Read-through cache with version-checked entries and explicit invalidation.

Layout in the backend (``<p>`` is the configured key prefix)::

    <p>:ver:<key>    integer version, bumped by invalidate(key)
    <p>:data:<key>   JSON envelope {"value", "version", "expires_at"}

An entry is served only when the versions recorded in its envelope equal the
current versions of its key (and namespace, if any). A loader that started
before an invalidation stores its value under the old version, so the next
read sees a mismatch and reloads: staleness is bounded by the TTL.

The store is the only authority. Nothing here is ever written by ingestion
logic except through ``invalidate``.

An invalidation that cannot reach the backend is remembered and replayed
before the next read is served from the cache. Until the replay succeeds
every read goes straight to the loader, so an entry cached before a
committed write is never served after it.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, TypeVar

from app.cache.store import CacheStore, CacheUnavailableError, build_cache_store
from app.config import CacheSettings, get_cache_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_VERSION_TTL_FLOOR_SECONDS = 7 * 24 * 3600


@dataclass(frozen=True)
class CacheEntry:
    """
    Decoded cache envelope. Never authoritative.
    """

    key: str
    value: Any
    expires_at: float
    version: tuple[int, ...]


@dataclass
class _InFlightLoad:
    done: threading.Event = field(default_factory=threading.Event)
    value: Any = None
    error: BaseException | None = None


class CacheCoordinator:
    """
    Coordinates read-through loads, version checks and invalidation.
    """

    def __init__(
        self,
        *,
        store: CacheStore,
        settings: CacheSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings or CacheSettings()
        self._clock = clock
        self._prefix = self._settings.key_prefix
        self._ttl_seconds = self._settings.ttl_seconds
        self._version_ttl_seconds = max(_VERSION_TTL_FLOOR_SECONDS, self._ttl_seconds * 100)
        self._lock = threading.Lock()
        self._in_flight: dict[tuple[str, tuple[int, ...]], _InFlightLoad] = {}
        self._degraded = False
        self._pending_invalidations: dict[str, int] = {}

    @property
    def degraded(self) -> bool:
        return self._degraded

    def get(self, key: str, loader: Callable[[], T], *, namespace: str | None = None) -> T:
        """
        Return the cached value for ``key`` or load, store and return it.

        ``loader`` must return a JSON-serializable value. When the cache is
        unreachable the loader is called directly.
        """

        if self._pending_invalidations and not self._replay_pending_invalidations():
            return loader()

        version_keys = [self._version_key(key)]
        if namespace is not None:
            version_keys.append(self._version_key(namespace))

        try:
            raw_entry, *raw_versions = self._store.get_many([self._data_key(key), *version_keys])
        except CacheUnavailableError as exc:
            self._mark_degraded(exc)
            return loader()
        self._mark_healthy()

        versions = tuple(int(raw) if raw is not None else 0 for raw in raw_versions)
        entry = self._decode(key, raw_entry)
        if entry is not None and entry.version == versions and entry.expires_at > self._clock():
            return entry.value

        return self._load(key, loader, versions)

    def invalidate(self, key: str) -> None:
        """
        Bump ``key``'s version, then drop its data. Call only after the
        authoritative write has committed.
        """

        try:
            self._bump(key)
        except CacheUnavailableError as exc:
            with self._lock:
                self._pending_invalidations[key] = self._pending_invalidations.get(key, 0) + 1
            self._mark_degraded(exc)
            return
        with self._lock:
            self._pending_invalidations.pop(key, None)
        self._mark_healthy()

    def invalidate_many(self, *keys: str) -> None:
        for key in keys:
            self.invalidate(key)

    def ping(self) -> bool:
        return self._store.ping()

    def pending_invalidations(self) -> set[str]:
        with self._lock:
            return set(self._pending_invalidations)

    def peek(self, key: str) -> CacheEntry | None:
        """
        Return the stored envelope for ``key`` without loading. Diagnostics only.
        """

        try:
            (raw_entry,) = self._store.get_many([self._data_key(key)])
        except CacheUnavailableError as exc:
            self._mark_degraded(exc)
            return None
        return self._decode(key, raw_entry)

    def _load(self, key: str, loader: Callable[[], T], versions: tuple[int, ...]) -> T:
        # Only loads that observed the same versions are shared, so a reader
        # arriving after an invalidation never joins an older load.
        flight_key = (key, versions)
        with self._lock:
            flight = self._in_flight.get(flight_key)
            is_leader = flight is None
            if is_leader:
                flight = _InFlightLoad()
                self._in_flight[flight_key] = flight

        if not is_leader:
            finished = flight.done.wait(self._settings.load_wait_seconds)
            if finished and flight.error is None:
                return flight.value
            return loader()

        # The entry is written before waiters are released so that a reader
        # arriving after the flight ends finds it instead of loading again.
        try:
            value = loader()
            flight.value = value
            self._write_entry(key, value, versions)
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            flight.done.set()
            with self._lock:
                self._in_flight.pop(flight_key, None)

        return value

    def _bump(self, key: str) -> None:
        self._store.incr(self._version_key(key), ttl_seconds=self._version_ttl_seconds)
        self._store.delete(self._data_key(key))

    def _replay_pending_invalidations(self) -> bool:
        """
        Re-issue invalidations that failed during an outage. Returns False
        while the backend is still unreachable.
        """

        with self._lock:
            pending = dict(self._pending_invalidations)
        for key, generation in sorted(pending.items()):
            try:
                self._bump(key)
            except CacheUnavailableError as exc:
                self._mark_degraded(exc)
                return False
            with self._lock:
                # A failure recorded while this replay ran stays pending.
                if self._pending_invalidations.get(key) == generation:
                    del self._pending_invalidations[key]
        if pending:
            logger.info("Replayed %s cache invalidation(s) missed during the outage", len(pending))
        return True

    def _write_entry(self, key: str, value: Any, versions: tuple[int, ...]) -> None:
        envelope = {
            "value": value,
            "version": list(versions),
            "expires_at": self._clock() + self._ttl_seconds,
        }
        encoded = json.dumps(envelope, separators=(",", ":"), default=str)
        try:
            self._store.set(self._data_key(key), encoded, ttl_seconds=self._ttl_seconds)
        except CacheUnavailableError as exc:
            self._mark_degraded(exc)
            return
        self._mark_healthy()

    def _decode(self, key: str, raw_entry: str | None) -> CacheEntry | None:
        if raw_entry is None:
            return None
        try:
            envelope = json.loads(raw_entry)
            return CacheEntry(
                key=key,
                value=envelope["value"],
                expires_at=float(envelope["expires_at"]),
                version=tuple(int(part) for part in envelope["version"]),
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding undecodable cache entry key=%s", key)
            return None

    def _mark_degraded(self, exc: Exception) -> None:
        with self._lock:
            first_failure = not self._degraded
            self._degraded = True
        if first_failure:
            logger.warning(
                "Cache unavailable; serving directly from the store until it recovers error=%s",
                exc,
            )

    def _mark_healthy(self) -> None:
        if not self._degraded:
            return
        with self._lock:
            recovered = self._degraded
            self._degraded = False
        if recovered:
            logger.info("Cache recovered; read-through caching resumed")

    def _data_key(self, key: str) -> str:
        return f"{self._prefix}:data:{key}"

    def _version_key(self, key: str) -> str:
        return f"{self._prefix}:ver:{key}"


@lru_cache(maxsize=1)
def get_cache_coordinator() -> CacheCoordinator:
    """
    Build and cache the process-wide coordinator.
    """

    settings = get_cache_settings()
    return CacheCoordinator(store=build_cache_store(settings), settings=settings)
