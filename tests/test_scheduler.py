"""
tests/test_scheduler.py

Snapshot job registration and the job body.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from app.config import SnapshotSettings
from app.errors import DependencyUnavailableError
from app.scheduler.jobs import SNAPSHOT_JOB_ID, build_scheduler, run_snapshot_capture
from app.schemas.analytics import SnapshotRange

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class StubStore:
    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    def capture(self):
        self.calls += 1
        raise self.error


def test_job_registered_without_overlap() -> None:
    scheduler = build_scheduler(SnapshotSettings(enabled=True, interval_minutes=5))
    job = scheduler.get_job(SNAPSHOT_JOB_ID)

    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval == timedelta(minutes=5)


def test_disabled_scheduler_has_no_jobs() -> None:
    scheduler = build_scheduler(SnapshotSettings(enabled=False))
    assert scheduler.get_jobs() == []


def test_run_writes_one_snapshot_per_timestamp(snapshot_store) -> None:
    run_snapshot_capture(snapshot_store)
    run_snapshot_capture(snapshot_store)

    window = SnapshotRange(start=T0 - timedelta(hours=1), end=T0 + timedelta(hours=1))
    assert len(list(snapshot_store.query(window))) == 1


def test_run_logs_and_swallows_core_errors(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="app.scheduler.jobs")
    store = StubStore(DependencyUnavailableError("store down"))

    run_snapshot_capture(store)

    assert store.calls == 1
    assert any("dependency_unavailable" in record.getMessage() for record in caplog.records)


def test_run_propagates_unexpected_errors() -> None:
    with pytest.raises(ZeroDivisionError):
        run_snapshot_capture(StubStore(ZeroDivisionError()))
