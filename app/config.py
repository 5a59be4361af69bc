"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

_ALLOWED_CACHE_BACKENDS = {"memory", "redis"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class StoreSettings:
    """
    Timeouts and retry policy for relational store calls.
    """

    connect_timeout_seconds: int = 5
    statement_timeout_ms: int = 5000
    pool_timeout_seconds: float = 5.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.2
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class CacheSettings:
    """
    Cache backend selection and TTL policy.
    """

    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "ci"
    ttl_seconds: int = 60
    socket_timeout_seconds: float = 0.5
    load_wait_seconds: float = 5.0


@dataclass(frozen=True)
class WorkflowTrackerSettings:
    """
    Optimistic-concurrency policy for workflow run ingestion.
    """

    max_conflict_attempts: int = 3


@dataclass(frozen=True)
class AlertSettings:
    """
    Competitor alert deduplication and classification settings.
    """

    dedupe_window_hours: float = 24.0
    max_conflict_attempts: int = 3
    priority_rules_path: str = "config/alert_priority_rules.json"
    default_page_size: int = 20
    max_page_size: int = 200


@dataclass(frozen=True)
class IngestionQueueSettings:
    """
    Bounded inbound queue settings.
    """

    max_size: int = 1000
    workers: int = 4
    shutdown_timeout_seconds: float = 10.0
    max_delivery_attempts: int = 5


@dataclass(frozen=True)
class SnapshotSettings:
    """
    Scheduled analytics capture settings.
    """

    enabled: bool = True
    interval_minutes: int = 15


@lru_cache(maxsize=1)
def get_store_settings() -> StoreSettings:
    """
    Return cached relational store settings from environment variables.
    """

    return StoreSettings(
        connect_timeout_seconds=max(1, _get_int_env("DB_CONNECT_TIMEOUT_SECONDS", 5)),
        statement_timeout_ms=max(100, _get_int_env("DB_STATEMENT_TIMEOUT_MS", 5000)),
        pool_timeout_seconds=max(0.5, _get_float_env("DB_POOL_TIMEOUT_SECONDS", 5.0)),
        max_retries=max(0, _get_int_env("STORE_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.0, _get_float_env("STORE_BACKOFF_INITIAL_SECONDS", 0.2)),
        backoff_multiplier=max(1.0, _get_float_env("STORE_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """
    Return cached cache-layer settings from environment variables.

    Raises RuntimeError if CACHE_BACKEND names an unknown backend.
    """

    backend = _get_str_env("CACHE_BACKEND", "memory").lower()
    if backend not in _ALLOWED_CACHE_BACKENDS:
        raise RuntimeError(
            f"CACHE_BACKEND '{backend}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_CACHE_BACKENDS)}."
        )
    return CacheSettings(
        backend=backend,
        redis_url=_get_str_env("REDIS_URL", "redis://localhost:6379/0"),
        key_prefix=_get_str_env("CACHE_KEY_PREFIX", "ci"),
        ttl_seconds=max(1, _get_int_env("CACHE_TTL_SECONDS", 60)),
        socket_timeout_seconds=max(0.05, _get_float_env("CACHE_SOCKET_TIMEOUT_SECONDS", 0.5)),
        load_wait_seconds=max(0.1, _get_float_env("CACHE_LOAD_WAIT_SECONDS", 5.0)),
    )


@lru_cache(maxsize=1)
def get_workflow_tracker_settings() -> WorkflowTrackerSettings:
    """
    Return workflow tracker settings.
    """

    return WorkflowTrackerSettings(
        max_conflict_attempts=max(1, _get_int_env("WORKFLOW_MAX_CONFLICT_ATTEMPTS", 3)),
    )


@lru_cache(maxsize=1)
def get_alert_settings() -> AlertSettings:
    """
    Return competitor alert settings.
    """

    return AlertSettings(
        dedupe_window_hours=max(0.01, _get_float_env("ALERT_DEDUPE_WINDOW_HOURS", 24.0)),
        max_conflict_attempts=max(1, _get_int_env("ALERT_MAX_CONFLICT_ATTEMPTS", 3)),
        priority_rules_path=_get_str_env(
            "ALERT_PRIORITY_RULES_PATH",
            "config/alert_priority_rules.json",
        ),
        default_page_size=max(1, _get_int_env("ALERT_DEFAULT_PAGE_SIZE", 20)),
        max_page_size=max(1, _get_int_env("ALERT_MAX_PAGE_SIZE", 200)),
    )


@lru_cache(maxsize=1)
def get_ingestion_queue_settings() -> IngestionQueueSettings:
    """
    Return inbound queue settings.
    """

    return IngestionQueueSettings(
        max_size=max(1, _get_int_env("INGEST_QUEUE_MAX_SIZE", 1000)),
        workers=max(1, _get_int_env("INGEST_QUEUE_WORKERS", 4)),
        shutdown_timeout_seconds=max(0.1, _get_float_env("INGEST_QUEUE_SHUTDOWN_TIMEOUT_SECONDS", 10.0)),
        max_delivery_attempts=max(1, _get_int_env("INGEST_QUEUE_MAX_DELIVERY_ATTEMPTS", 5)),
    )


@lru_cache(maxsize=1)
def get_snapshot_settings() -> SnapshotSettings:
    """
    Return analytics snapshot scheduling settings.
    """

    return SnapshotSettings(
        enabled=_get_bool_env("SNAPSHOT_ENABLED", True),
        interval_minutes=max(1, _get_int_env("SNAPSHOT_INTERVAL_MINUTES", 15)),
    )
