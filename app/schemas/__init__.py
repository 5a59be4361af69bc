"""
app/schemas package marker.
"""

from app.schemas.analytics import AnalyticsSnapshotRead, MetricPoint, SnapshotRange
from app.schemas.competitor_alerts import (
    AlertFilter,
    AlertIngestResult,
    AlertPage,
    CompetitorAlertRead,
    CompetitorSignal,
    PageRequest,
)
from app.schemas.workflow_runs import (
    WorkflowCallbackEvent,
    WorkflowIngestResult,
    WorkflowProgress,
    WorkflowRunRead,
)

__all__ = [
    "AlertFilter",
    "AlertIngestResult",
    "AlertPage",
    "AnalyticsSnapshotRead",
    "CompetitorAlertRead",
    "CompetitorSignal",
    "MetricPoint",
    "PageRequest",
    "SnapshotRange",
    "WorkflowCallbackEvent",
    "WorkflowIngestResult",
    "WorkflowProgress",
    "WorkflowRunRead",
]
