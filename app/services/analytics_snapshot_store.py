"""
app/services/analytics_snapshot_store.py

Append-only analytics rollups for dashboard trend series.

``capture`` is serialized against itself only: a second call while one is in
flight (in this process, or in another instance holding the advisory lock)
returns ``None`` instead of waiting. It may run alongside run/alert ingestion
because it only reads current counters.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.config import StoreSettings, get_store_settings
from app.logging_utils import log_event
from app.schemas.analytics import AnalyticsSnapshotRead, MetricPoint, SnapshotRange
from app.services.retry import call_with_backoff
from db.base import as_utc
from db.repositories.analytics_snapshot_repository import AnalyticsSnapshotRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotSeries:
    """
    Lazy, finite, restartable sequence of snapshots in one range.

    Each ``iter()`` opens a fresh session and re-reads the store, so a failed
    consumer can simply iterate again.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        snapshot_range: SnapshotRange,
        batch_size: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self._range = snapshot_range
        self._batch_size = batch_size

    @property
    def range(self) -> SnapshotRange:
        return self._range

    def __iter__(self) -> Iterator[AnalyticsSnapshotRead]:
        with self._session_factory() as db:
            rows = AnalyticsSnapshotRepository(db).iter_range(
                start=self._range.start,
                end=self._range.end,
                batch_size=self._batch_size,
            )
            for row in rows:
                yield AnalyticsSnapshotRead.from_model(row)


class AnalyticsSnapshotStore:
    """
    Captures and queries immutable analytics snapshots.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        store_settings: StoreSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._store_settings = store_settings or get_store_settings()
        self._clock = clock
        self._sleep = sleep
        self._capture_lock = threading.Lock()

    def capture(self) -> AnalyticsSnapshotRead | None:
        """
        Write one snapshot of the current counters.

        Returns ``None`` when skipped: a capture already in flight, or a
        timestamp not strictly after the latest stored snapshot.
        """

        if not self._capture_lock.acquire(blocking=False):
            logger.info("Snapshot capture skipped: another capture is in flight")
            return None
        try:
            return call_with_backoff(
                self._capture_once,
                settings=self._store_settings,
                description="analytics_snapshot.capture",
                sleep=self._sleep,
            )
        finally:
            self._capture_lock.release()

    def _capture_once(self) -> AnalyticsSnapshotRead | None:
        captured_at = as_utc(self._clock())
        try:
            with self._session_factory() as db:
                with db.begin():
                    repository = AnalyticsSnapshotRepository(db)
                    if not repository.try_capture_lock():
                        logger.info("Snapshot capture skipped: another instance holds the capture lock")
                        return None

                    latest = repository.latest_captured_at()
                    if latest is not None and captured_at <= latest:
                        logger.warning(
                            "Snapshot capture skipped: captured_at=%s is not after latest=%s",
                            captured_at.isoformat(),
                            latest.isoformat(),
                        )
                        return None

                    metrics = repository.read_counters(now=captured_at)
                    snapshot = repository.insert_snapshot(captured_at=captured_at, metrics=metrics)
                    result = AnalyticsSnapshotRead.from_model(snapshot)
        except IntegrityError:
            logger.warning(
                "Snapshot capture skipped: a snapshot already exists at captured_at=%s",
                captured_at.isoformat(),
            )
            return None

        log_event(
            logger,
            logging.INFO,
            "analytics_snapshot_captured",
            snapshot_id=str(result.id),
            captured_at=result.captured_at.isoformat(),
            metric_count=len(result.metrics),
        )
        return result

    def query(self, snapshot_range: SnapshotRange) -> SnapshotSeries:
        return SnapshotSeries(session_factory=self._session_factory, snapshot_range=snapshot_range)

    def metric_series(self, metric: str, snapshot_range: SnapshotRange) -> list[MetricPoint]:
        """
        ``(captured_at, value)`` points for one metric; snapshots lacking it are skipped.
        """

        def collect() -> list[MetricPoint]:
            return [
                MetricPoint(captured_at=snapshot.captured_at, value=snapshot.metrics[metric])
                for snapshot in self.query(snapshot_range)
                if metric in snapshot.metrics
            ]

        return call_with_backoff(
            collect,
            settings=self._store_settings,
            description="analytics_snapshot.metric_series",
            sleep=self._sleep,
        )


@lru_cache(maxsize=1)
def get_analytics_snapshot_store() -> AnalyticsSnapshotStore:
    """
    Build and cache the snapshot store.
    """

    return AnalyticsSnapshotStore()
