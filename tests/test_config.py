"""
tests/test_config.py

Environment parsing for application and store settings.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import (
    get_alert_settings,
    get_cache_settings,
    get_ingestion_queue_settings,
    get_snapshot_settings,
    get_store_settings,
)
from db.config import build_connect_args, normalize_postgres_url

_CACHED_GETTERS = (
    get_alert_settings,
    get_cache_settings,
    get_ingestion_queue_settings,
    get_snapshot_settings,
    get_store_settings,
)


@pytest.fixture(autouse=True)
def fresh_settings() -> Iterator[None]:
    for getter in _CACHED_GETTERS:
        getter.cache_clear()
    yield
    for getter in _CACHED_GETTERS:
        getter.cache_clear()


def test_store_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DB_CONNECT_TIMEOUT_SECONDS", "DB_STATEMENT_TIMEOUT_MS", "STORE_MAX_RETRIES"):
        monkeypatch.delenv(name, raising=False)

    settings = get_store_settings()

    assert settings.connect_timeout_seconds == 5
    assert settings.statement_timeout_ms == 5000
    assert settings.max_retries == 3


def test_store_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_STATEMENT_TIMEOUT_MS", "2500")
    monkeypatch.setenv("STORE_MAX_RETRIES", "not-a-number")
    monkeypatch.setenv("STORE_BACKOFF_MULTIPLIER", "0.5")

    settings = get_store_settings()

    assert settings.statement_timeout_ms == 2500
    assert settings.max_retries == 3
    assert settings.backoff_multiplier == 1.0


def test_unknown_cache_backend_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CACHE_BACKEND", "memcached")
    with pytest.raises(RuntimeError):
        get_cache_settings()


def test_redis_cache_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CACHE_BACKEND", " Redis ")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("CACHE_TTL_SECONDS", "0")

    settings = get_cache_settings()

    assert settings.backend == "redis"
    assert settings.redis_url == "redis://cache:6379/2"
    assert settings.ttl_seconds == 1


def test_alert_and_queue_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALERT_DEDUPE_WINDOW_HOURS", "6")
    monkeypatch.setenv("ALERT_MAX_PAGE_SIZE", "50")
    monkeypatch.setenv("INGEST_QUEUE_MAX_SIZE", "25")
    monkeypatch.setenv("INGEST_QUEUE_WORKERS", "0")
    monkeypatch.setenv("INGEST_QUEUE_MAX_DELIVERY_ATTEMPTS", "0")

    assert get_alert_settings().dedupe_window_hours == 6.0
    assert get_alert_settings().max_page_size == 50
    assert get_ingestion_queue_settings().max_size == 25
    assert get_ingestion_queue_settings().workers == 1
    assert get_ingestion_queue_settings().max_delivery_attempts == 1


def test_snapshot_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SNAPSHOT_ENABLED", "false")
    monkeypatch.setenv("SNAPSHOT_INTERVAL_MINUTES", "5")

    settings = get_snapshot_settings()

    assert settings.enabled is False
    assert settings.interval_minutes == 5


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql+psycopg://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
    ],
)
def test_normalize_postgres_url(raw: str, expected: str) -> None:
    assert normalize_postgres_url(raw) == expected


def test_connect_args_bound_statements() -> None:
    assert build_connect_args(connect_timeout_seconds=3, statement_timeout_ms=1500) == {
        "connect_timeout": 3,
        "options": "-c statement_timeout=1500",
    }
