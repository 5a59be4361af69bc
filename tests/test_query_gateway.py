"""
tests/test_query_gateway.py

Tests for DashboardQueryGateway: every read delegates to the owning service
and observes writes immediately.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.errors import NotFoundError
from app.schemas.analytics import SnapshotRange
from app.schemas.competitor_alerts import AlertFilter, PageRequest
from app.services.analytics_snapshot_store import SnapshotSeries
from app.services.query_gateway import DashboardQueryGateway

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

WINDOW = SnapshotRange(start=T0 - timedelta(hours=1), end=T0 + timedelta(hours=1))


def test_status_and_active_runs(gateway: DashboardQueryGateway, tracker) -> None:
    tracker.ingest_event(
        {
            "workflowId": "wf-9",
            "seq": 1,
            "status": "running",
            "progress": {"completed": 4, "total": 8},
            "timestamp": T0.isoformat(),
        }
    )

    assert gateway.get_status("wf-9").progress.completed == 4
    assert [run.workflow_id for run in gateway.list_active()] == ["wf-9"]


def test_unknown_status_not_found(gateway: DashboardQueryGateway) -> None:
    with pytest.raises(NotFoundError):
        gateway.get_status("nope")


def test_alert_listing(gateway: DashboardQueryGateway, aggregator) -> None:
    aggregator.ingest_raw(
        {
            "competitorName": "Casino Guru",
            "alertType": "site_change",
            "message": "Launched promotion",
            "detectedAt": T0.isoformat(),
        }
    )

    page = gateway.list_alerts(AlertFilter(priority="high"), PageRequest(page=1, page_size=5))

    assert page.total == 1
    assert page.items[0].priority == "high"
    assert gateway.list_alerts(AlertFilter(priority="low")).total == 0


def test_snapshot_reads(gateway: DashboardQueryGateway, snapshot_store) -> None:
    snapshot = snapshot_store.capture()

    series = gateway.get_snapshots(WINDOW)
    assert isinstance(series, SnapshotSeries)
    assert [item.id for item in series] == [snapshot.id]
    assert gateway.collect_snapshots(WINDOW) == [snapshot]
    assert [point.value for point in gateway.get_metric_series("alerts_total", WINDOW)] == [0.0]
