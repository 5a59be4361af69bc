"""
Repository for analytics snapshot capture and range reads.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from db.base import as_utc
from db.models.analytics_snapshot import AnalyticsSnapshot
from db.models.competitor_alert import AlertPriority, CompetitorAlert
from db.models.workflow_run import WorkflowRun, WorkflowRunStatus

_CAPTURE_LOCK_ID = 7_310_224_001


def _count_runs(status: str):
    return (
        select(func.count())
        .select_from(WorkflowRun)
        .where(WorkflowRun.status == status)
        .scalar_subquery()
    )


class AnalyticsSnapshotRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def try_capture_lock(self) -> bool:
        """
        Take a transaction-scoped advisory lock so only one service instance
        captures at a time. Always granted on non-PostgreSQL stores.
        """

        if self._session.get_bind().dialect.name != "postgresql":
            return True
        return bool(self._session.scalar(select(func.pg_try_advisory_xact_lock(_CAPTURE_LOCK_ID))))

    def latest_captured_at(self) -> datetime | None:
        latest = self._session.scalar(select(func.max(AnalyticsSnapshot.captured_at)))
        return as_utc(latest) if latest is not None else None

    def read_counters(self, *, now: datetime) -> dict[str, int]:
        """
        Read every aggregate counter in one SELECT so all values come from the
        same statement snapshot.
        """

        recent_cutoff = now - timedelta(hours=24)
        stmt = select(
            _count_runs(WorkflowRunStatus.PENDING).label("runs_pending"),
            _count_runs(WorkflowRunStatus.RUNNING).label("runs_running"),
            _count_runs(WorkflowRunStatus.COMPLETED).label("runs_completed"),
            _count_runs(WorkflowRunStatus.FAILED).label("runs_failed"),
            select(func.count()).select_from(CompetitorAlert).scalar_subquery().label("alerts_total"),
            select(func.count())
            .select_from(CompetitorAlert)
            .where(CompetitorAlert.priority == AlertPriority.HIGH)
            .scalar_subquery()
            .label("alerts_high_priority"),
            select(func.coalesce(func.sum(CompetitorAlert.occurrence_count), 0))
            .scalar_subquery()
            .label("alert_occurrences_total"),
            select(func.count(func.distinct(CompetitorAlert.competitor_name)))
            .scalar_subquery()
            .label("competitors_monitored"),
            select(func.count())
            .select_from(CompetitorAlert)
            .where(CompetitorAlert.last_seen_at >= recent_cutoff)
            .scalar_subquery()
            .label("alerts_last_24h"),
        )
        row = self._session.execute(stmt).one()
        counters = {key: int(value or 0) for key, value in row._mapping.items()}
        counters["runs_active"] = counters["runs_pending"] + counters["runs_running"]
        return counters

    def insert_snapshot(self, *, captured_at: datetime, metrics: dict[str, Any]) -> AnalyticsSnapshot:
        snapshot = AnalyticsSnapshot(captured_at=captured_at, metrics=metrics)
        self._session.add(snapshot)
        self._session.flush()
        return snapshot

    def iter_range(
        self,
        *,
        start: datetime,
        end: datetime,
        batch_size: int = 500,
    ) -> Iterator[AnalyticsSnapshot]:
        stmt: Select[tuple[AnalyticsSnapshot]] = (
            select(AnalyticsSnapshot)
            .where(AnalyticsSnapshot.captured_at >= start, AnalyticsSnapshot.captured_at <= end)
            .order_by(AnalyticsSnapshot.captured_at.asc())
            .execution_options(yield_per=max(1, batch_size))
        )
        yield from self._session.scalars(stmt)
