"""
app/services package marker.
"""

from app.services.alert_classifier import AlertPriorityClassifier, get_alert_priority_classifier
from app.services.analytics_snapshot_store import (
    AnalyticsSnapshotStore,
    SnapshotSeries,
    get_analytics_snapshot_store,
)
from app.services.competitor_alert_aggregator import (
    CompetitorAlertAggregator,
    get_competitor_alert_aggregator,
)
from app.services.ingestion_queue import IngestionQueue, get_ingestion_queue
from app.services.query_gateway import DashboardQueryGateway, get_query_gateway
from app.services.workflow_run_tracker import WorkflowRunTracker, get_workflow_run_tracker

__all__ = [
    "AlertPriorityClassifier",
    "get_alert_priority_classifier",
    "AnalyticsSnapshotStore",
    "SnapshotSeries",
    "get_analytics_snapshot_store",
    "CompetitorAlertAggregator",
    "get_competitor_alert_aggregator",
    "IngestionQueue",
    "get_ingestion_queue",
    "DashboardQueryGateway",
    "get_query_gateway",
    "WorkflowRunTracker",
    "get_workflow_run_tracker",
]
