"""
Repository layer exports.
"""

from db.repositories.analytics_snapshot_repository import AnalyticsSnapshotRepository
from db.repositories.competitor_alert_repository import CompetitorAlertRepository
from db.repositories.workflow_run_repository import WorkflowRunRepository

__all__ = [
    "AnalyticsSnapshotRepository",
    "CompetitorAlertRepository",
    "WorkflowRunRepository",
]
