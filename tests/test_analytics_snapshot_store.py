"""
tests/test_analytics_snapshot_store.py

Integration tests for AnalyticsSnapshotStore against an in-memory SQLite store.

Coverage
--------
- Capture records the current counters
- Snapshots are immutable after later writes
- Range queries: inclusive bounds, ascending order, restartable iteration
- Overlapping captures are skipped, as are non-increasing timestamps
- Per-metric series
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.analytics import SnapshotRange
from app.services.analytics_snapshot_store import AnalyticsSnapshotStore
from app.services.competitor_alert_aggregator import CompetitorAlertAggregator
from app.services.workflow_run_tracker import WorkflowRunTracker

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

EXPECTED_METRICS = {
    "runs_active",
    "runs_pending",
    "runs_running",
    "runs_completed",
    "runs_failed",
    "alerts_total",
    "alerts_high_priority",
    "alert_occurrences_total",
    "competitors_monitored",
    "alerts_last_24h",
}


def run_event(workflow_id: str, seq: int, status: str) -> dict:
    return {
        "workflowId": workflow_id,
        "seq": seq,
        "status": status,
        "progress": {"completed": 0, "total": 10},
        "timestamp": T0.isoformat(),
    }


def alert_signal(competitor: str, message: str, *, hours: float = 0) -> dict:
    return {
        "competitorName": competitor,
        "alertType": "site_change",
        "message": message,
        "detectedAt": (T0 + timedelta(hours=hours)).isoformat(),
    }


def whole_day() -> SnapshotRange:
    return SnapshotRange(start=T0 - timedelta(days=1), end=T0 + timedelta(days=1))


@pytest.fixture()
def populated(tracker: WorkflowRunTracker, aggregator: CompetitorAlertAggregator) -> None:
    tracker.ingest_event(run_event("wf-1", 1, "pending"))
    tracker.ingest_event(run_event("wf-2", 1, "running"))
    tracker.ingest_event(run_event("wf-3", 1, "running"))
    tracker.ingest_event(run_event("wf-3", 2, "completed"))
    tracker.ingest_event(run_event("wf-4", 1, "failed"))

    aggregator.ingest_raw(alert_signal("Casino Guru", "New welcome bonus"))
    aggregator.ingest_raw(alert_signal("Casino Guru", "New welcome bonus", hours=1))
    aggregator.ingest_raw(alert_signal("Bonus Finder", "Backlink added"))


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class TestCapture:
    def test_empty_store_captures_zeroes(self, snapshot_store: AnalyticsSnapshotStore) -> None:
        snapshot = snapshot_store.capture()

        assert snapshot is not None
        assert set(snapshot.metrics) == EXPECTED_METRICS
        assert all(value == 0 for value in snapshot.metrics.values())
        assert snapshot.captured_at == T0

    def test_counters_reflect_store(self, populated: None, snapshot_store: AnalyticsSnapshotStore, utc_clock) -> None:
        utc_clock.now = T0 + timedelta(hours=2)
        metrics = snapshot_store.capture().metrics

        assert metrics["runs_pending"] == 1
        assert metrics["runs_running"] == 1
        assert metrics["runs_completed"] == 1
        assert metrics["runs_failed"] == 1
        assert metrics["runs_active"] == 2
        assert metrics["alerts_total"] == 2
        assert metrics["alerts_high_priority"] == 1
        assert metrics["alert_occurrences_total"] == 3
        assert metrics["competitors_monitored"] == 2
        assert metrics["alerts_last_24h"] == 2

    def test_recent_alert_window(self, populated: None, snapshot_store: AnalyticsSnapshotStore, utc_clock) -> None:
        utc_clock.now = T0 + timedelta(hours=24, minutes=30)
        metrics = snapshot_store.capture().metrics

        # Only the merged alert was last seen within the past 24 hours.
        assert metrics["alerts_last_24h"] == 1

    def test_same_timestamp_is_skipped(self, snapshot_store: AnalyticsSnapshotStore) -> None:
        assert snapshot_store.capture() is not None
        assert snapshot_store.capture() is None
        assert len(list(snapshot_store.query(whole_day()))) == 1

    def test_earlier_timestamp_is_skipped(self, snapshot_store: AnalyticsSnapshotStore, utc_clock) -> None:
        snapshot_store.capture()
        utc_clock.now = T0 - timedelta(minutes=1)

        assert snapshot_store.capture() is None

    def test_overlapping_capture_is_skipped(self, session_factory, store_settings) -> None:
        nested: list[object] = []
        store: AnalyticsSnapshotStore

        def reentrant_clock() -> datetime:
            nested.append(store.capture())
            return T0

        store = AnalyticsSnapshotStore(
            session_factory=session_factory,
            store_settings=store_settings,
            clock=reentrant_clock,
            sleep=lambda _s: None,
        )

        assert store.capture() is not None
        assert nested == [None]

    def test_snapshot_is_immutable(
        self,
        snapshot_store: AnalyticsSnapshotStore,
        aggregator: CompetitorAlertAggregator,
        utc_clock,
    ) -> None:
        first = snapshot_store.capture()
        aggregator.ingest_raw(alert_signal("Casino Guru", "Moved down 3 positions"))
        utc_clock.now = T0 + timedelta(minutes=15)
        second = snapshot_store.capture()

        stored = list(snapshot_store.query(whole_day()))
        assert [item.id for item in stored] == [first.id, second.id]
        assert stored[0].metrics["alerts_total"] == 0
        assert stored[1].metrics["alerts_total"] == 1


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class TestQuery:
    @pytest.fixture()
    def three_snapshots(self, snapshot_store: AnalyticsSnapshotStore, utc_clock) -> list:
        captured = []
        for minutes in (0, 15, 30):
            utc_clock.now = T0 + timedelta(minutes=minutes)
            captured.append(snapshot_store.capture())
        return captured

    def test_range_is_inclusive_and_ascending(self, snapshot_store: AnalyticsSnapshotStore, three_snapshots) -> None:
        series = snapshot_store.query(SnapshotRange(start=T0 + timedelta(minutes=15), end=T0 + timedelta(minutes=30)))

        assert [item.captured_at for item in series] == [
            T0 + timedelta(minutes=15),
            T0 + timedelta(minutes=30),
        ]

    def test_series_is_restartable(self, snapshot_store: AnalyticsSnapshotStore, three_snapshots) -> None:
        series = snapshot_store.query(whole_day())

        first_pass = list(series)
        second_pass = list(series)
        assert first_pass == second_pass
        assert len(first_pass) == 3

    def test_partial_consumption_then_restart(self, snapshot_store: AnalyticsSnapshotStore, three_snapshots) -> None:
        series = snapshot_store.query(whole_day())

        iterator = iter(series)
        next(iterator)
        iterator.close()

        assert [item.id for item in series] == [snapshot.id for snapshot in three_snapshots]

    def test_empty_range(self, snapshot_store: AnalyticsSnapshotStore, three_snapshots) -> None:
        later = SnapshotRange(start=T0 + timedelta(days=2), end=T0 + timedelta(days=3))
        assert list(snapshot_store.query(later)) == []

    def test_inverted_range_rejected(self) -> None:
        with pytest.raises(ValueError):
            SnapshotRange(start=T0, end=T0 - timedelta(seconds=1))

    def test_metric_series(
        self,
        snapshot_store: AnalyticsSnapshotStore,
        tracker: WorkflowRunTracker,
        utc_clock,
    ) -> None:
        snapshot_store.capture()
        tracker.ingest_event(run_event("wf-1", 1, "running"))
        utc_clock.now = T0 + timedelta(minutes=15)
        snapshot_store.capture()

        points = snapshot_store.metric_series("runs_active", whole_day())

        assert [(point.captured_at, point.value) for point in points] == [
            (T0, 0.0),
            (T0 + timedelta(minutes=15), 1.0),
        ]

    def test_unknown_metric_yields_no_points(self, snapshot_store: AnalyticsSnapshotStore, three_snapshots) -> None:
        assert snapshot_store.metric_series("no_such_metric", whole_day()) == []
