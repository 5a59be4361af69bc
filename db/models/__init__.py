"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.analytics_snapshot import AnalyticsSnapshot
from db.models.competitor_alert import AlertPriority, CompetitorAlert
from db.models.workflow_run import WorkflowRun, WorkflowRunStatus

__all__ = [
    "AlertPriority",
    "AnalyticsSnapshot",
    "CompetitorAlert",
    "WorkflowRun",
    "WorkflowRunStatus",
]
