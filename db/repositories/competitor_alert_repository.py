"""
Repository for competitor alert persistence, dedupe lookup and pagination.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from db.base import as_utc
from db.models.competitor_alert import CompetitorAlert

_DEDUPE_LOCK_CLASS = 7_310_224


class CompetitorAlertRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_alert(self, alert_id: uuid.UUID) -> CompetitorAlert | None:
        return self._session.get(CompetitorAlert, alert_id)

    def lock_dedupe_key(self, dedupe_key: str) -> None:
        """
        Serialize writers of one dedupe key for the rest of the transaction.
        No-op on non-PostgreSQL stores, where the unique constraint is the
        only guard.
        """

        if self._session.get_bind().dialect.name != "postgresql":
            return
        self._session.execute(
            select(func.pg_advisory_xact_lock(_DEDUPE_LOCK_CLASS, int(dedupe_key[:7], 16)))
        )

    def find_open_alert(
        self,
        *,
        dedupe_key: str,
        detected_at: datetime,
        window: timedelta,
    ) -> CompetitorAlert | None:
        """
        Newest alert for ``dedupe_key`` whose anchor (its first ``detected_at``)
        lies strictly within ``window`` of ``detected_at``.
        """

        detected_at = as_utc(detected_at)
        stmt = (
            select(CompetitorAlert)
            .where(
                CompetitorAlert.dedupe_key == dedupe_key,
                CompetitorAlert.detected_at > detected_at - window,
                CompetitorAlert.detected_at < detected_at + window,
            )
            .order_by(CompetitorAlert.detected_at.desc(), CompetitorAlert.id.asc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def create_alert(
        self,
        *,
        competitor_name: str,
        alert_type: str,
        message: str,
        priority: str,
        detected_at: datetime,
        dedupe_key: str,
        window_bucket: int,
        originating_workflow_id: str | None = None,
    ) -> CompetitorAlert:
        alert = CompetitorAlert(
            competitor_name=competitor_name,
            alert_type=alert_type,
            message=message,
            priority=priority,
            detected_at=detected_at,
            last_seen_at=detected_at,
            occurrence_count=1,
            dedupe_key=dedupe_key,
            window_bucket=window_bucket,
            originating_workflow_id=originating_workflow_id,
        )
        self._session.add(alert)
        self._session.flush()
        return alert

    def record_repeat(self, alert: CompetitorAlert, *, seen_at: datetime) -> CompetitorAlert:
        """
        Count one more occurrence of an existing alert. last_seen_at only moves forward.
        """

        alert.occurrence_count = alert.occurrence_count + 1
        if as_utc(seen_at) > as_utc(alert.last_seen_at):
            alert.last_seen_at = as_utc(seen_at)
        self._session.flush()
        return alert

    def list_alerts(
        self,
        *,
        priority: str | None = None,
        detected_from: datetime | None = None,
        detected_to: datetime | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[CompetitorAlert], int]:
        """
        Return one page ordered by detected_at desc, id asc, plus the total.
        """

        stmt: Select[tuple[CompetitorAlert]] = select(CompetitorAlert)
        if priority:
            stmt = stmt.where(CompetitorAlert.priority == priority)
        if detected_from is not None:
            stmt = stmt.where(CompetitorAlert.detected_at >= detected_from)
        if detected_to is not None:
            stmt = stmt.where(CompetitorAlert.detected_at <= detected_to)

        total = self._session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        page_stmt = (
            stmt.order_by(CompetitorAlert.detected_at.desc(), CompetitorAlert.id.asc())
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        return list(self._session.scalars(page_stmt).all()), int(total)
