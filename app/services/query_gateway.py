"""
app/services/query_gateway.py

Read-only facade consumed by the dashboard layer.

Every operation is side-effect free on authoritative state and safe to poll.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from functools import lru_cache

from app.config import StoreSettings, get_store_settings
from app.schemas.analytics import AnalyticsSnapshotRead, MetricPoint, SnapshotRange
from app.schemas.competitor_alerts import AlertFilter, AlertPage, PageRequest
from app.schemas.workflow_runs import WorkflowRunRead
from app.services.analytics_snapshot_store import (
    AnalyticsSnapshotStore,
    SnapshotSeries,
    get_analytics_snapshot_store,
)
from app.services.competitor_alert_aggregator import (
    CompetitorAlertAggregator,
    get_competitor_alert_aggregator,
)
from app.services.retry import call_with_backoff
from app.services.workflow_run_tracker import WorkflowRunTracker, get_workflow_run_tracker


class DashboardQueryGateway:
    def __init__(
        self,
        *,
        tracker: WorkflowRunTracker,
        aggregator: CompetitorAlertAggregator,
        snapshots: AnalyticsSnapshotStore,
        store_settings: StoreSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._tracker = tracker
        self._aggregator = aggregator
        self._snapshots = snapshots
        self._store_settings = store_settings or get_store_settings()
        self._sleep = sleep

    def get_status(self, workflow_id: str) -> WorkflowRunRead:
        return self._tracker.get_status(workflow_id)

    def list_active(self) -> list[WorkflowRunRead]:
        return self._tracker.list_active()

    def list_alerts(
        self,
        alert_filter: AlertFilter | None = None,
        page: PageRequest | None = None,
    ) -> AlertPage:
        return self._aggregator.list_alerts(alert_filter, page)

    def get_snapshots(self, snapshot_range: SnapshotRange) -> SnapshotSeries:
        """Lazy series; iterate it (possibly more than once) to read."""
        return self._snapshots.query(snapshot_range)

    def collect_snapshots(self, snapshot_range: SnapshotRange) -> list[AnalyticsSnapshotRead]:
        """Materialize the series, re-iterating on transient store failures."""
        series = self.get_snapshots(snapshot_range)
        return call_with_backoff(
            lambda: list(series),
            settings=self._store_settings,
            description="query_gateway.snapshots",
            sleep=self._sleep,
        )

    def get_metric_series(self, metric: str, snapshot_range: SnapshotRange) -> list[MetricPoint]:
        return self._snapshots.metric_series(metric, snapshot_range)


@lru_cache(maxsize=1)
def get_query_gateway() -> DashboardQueryGateway:
    return DashboardQueryGateway(
        tracker=get_workflow_run_tracker(),
        aggregator=get_competitor_alert_aggregator(),
        snapshots=get_analytics_snapshot_store(),
    )
