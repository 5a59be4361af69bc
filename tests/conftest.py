"""
tests/conftest.py

Shared fixtures: an in-memory SQLite store, an in-memory cache driven by a
fake clock, and services wired to both with retry sleeps disabled.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401 registers all ORM models on Base.metadata
from app.cache.coordinator import CacheCoordinator
from app.cache.store import InMemoryCacheStore
from app.config import (
    AlertSettings,
    CacheSettings,
    IngestionQueueSettings,
    StoreSettings,
    WorkflowTrackerSettings,
)
from app.services.alert_classifier import AlertPriorityClassifier
from app.services.analytics_snapshot_store import AnalyticsSnapshotStore
from app.services.competitor_alert_aggregator import CompetitorAlertAggregator
from app.services.query_gateway import DashboardQueryGateway
from app.services.workflow_run_tracker import WorkflowRunTracker
from db.base import Base

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def no_sleep(_seconds: float) -> None:
    return None


class FakeClock:
    """Monotonic-style clock advanced by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Wall clock returning aware UTC datetimes, advanced by hand."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def store_settings() -> StoreSettings:
    return StoreSettings(max_retries=2, backoff_initial_seconds=0.0)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache_store(clock: FakeClock) -> InMemoryCacheStore:
    return InMemoryCacheStore(clock=clock)


@pytest.fixture()
def cache_settings() -> CacheSettings:
    return CacheSettings(ttl_seconds=60, load_wait_seconds=2.0)


@pytest.fixture()
def cache(cache_store: InMemoryCacheStore, cache_settings: CacheSettings, clock: FakeClock) -> CacheCoordinator:
    return CacheCoordinator(store=cache_store, settings=cache_settings, clock=clock)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def tracker(
    session_factory: sessionmaker[Session],
    cache: CacheCoordinator,
    store_settings: StoreSettings,
) -> WorkflowRunTracker:
    return WorkflowRunTracker(
        session_factory=session_factory,
        cache=cache,
        settings=WorkflowTrackerSettings(max_conflict_attempts=3),
        store_settings=store_settings,
        sleep=no_sleep,
    )


@pytest.fixture()
def alert_settings() -> AlertSettings:
    return AlertSettings(dedupe_window_hours=24.0, default_page_size=20, max_page_size=50)


@pytest.fixture()
def aggregator(
    session_factory: sessionmaker[Session],
    cache: CacheCoordinator,
    alert_settings: AlertSettings,
    store_settings: StoreSettings,
) -> CompetitorAlertAggregator:
    return CompetitorAlertAggregator(
        session_factory=session_factory,
        cache=cache,
        classifier=AlertPriorityClassifier(),
        settings=alert_settings,
        store_settings=store_settings,
        sleep=no_sleep,
    )


@pytest.fixture()
def utc_clock() -> FakeUtcClock:
    return FakeUtcClock()


@pytest.fixture()
def snapshot_store(
    session_factory: sessionmaker[Session],
    store_settings: StoreSettings,
    utc_clock: FakeUtcClock,
) -> AnalyticsSnapshotStore:
    return AnalyticsSnapshotStore(
        session_factory=session_factory,
        store_settings=store_settings,
        clock=utc_clock,
        sleep=no_sleep,
    )


@pytest.fixture()
def gateway(
    tracker: WorkflowRunTracker,
    aggregator: CompetitorAlertAggregator,
    snapshot_store: AnalyticsSnapshotStore,
    store_settings: StoreSettings,
) -> DashboardQueryGateway:
    return DashboardQueryGateway(
        tracker=tracker,
        aggregator=aggregator,
        snapshots=snapshot_store,
        store_settings=store_settings,
        sleep=no_sleep,
    )


@pytest.fixture()
def queue_settings() -> IngestionQueueSettings:
    return IngestionQueueSettings(max_size=2, workers=1, shutdown_timeout_seconds=2.0)
