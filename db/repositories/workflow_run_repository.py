"""
Repository for workflow run persistence and lookup.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.workflow_run import WorkflowRun, WorkflowRunStatus


class WorkflowRunRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_workflow_id(self, workflow_id: str) -> WorkflowRun | None:
        stmt = select(WorkflowRun).where(WorkflowRun.workflow_id == workflow_id)
        return self._session.scalars(stmt).one_or_none()

    def create_run(
        self,
        *,
        workflow_id: str,
        workflow_name: str,
        status: str,
        progress_completed: int,
        progress_total: int,
        seq: int,
        occurred_at: datetime,
        error: str | None = None,
    ) -> WorkflowRun:
        """
        Insert the first row for a workflow id.

        Raises IntegrityError on flush when a concurrent writer created the
        same workflow id first.
        """

        run = WorkflowRun(
            workflow_id=workflow_id,
            workflow_name=workflow_name,
            status=status,
            progress_completed=progress_completed,
            progress_total=progress_total,
            started_at=occurred_at,
            last_event_seq=seq,
            last_error=error,
        )
        if run.is_terminal:
            run.completed_at = occurred_at
        self._session.add(run)
        self._session.flush()
        return run

    def apply_event(
        self,
        run: WorkflowRun,
        *,
        status: str,
        progress_completed: int,
        progress_total: int,
        seq: int,
        occurred_at: datetime,
        error: str | None = None,
    ) -> WorkflowRun:
        """
        Apply one accepted event and flush.

        The flush issues a version-guarded UPDATE and raises StaleDataError if
        the row changed since it was read.
        """

        run.status = status
        run.progress_completed = progress_completed
        run.progress_total = progress_total
        run.last_event_seq = seq
        if error is not None:
            run.last_error = error
        if run.is_terminal:
            run.completed_at = occurred_at
        self._session.flush()
        return run

    def list_active(self) -> list[WorkflowRun]:
        stmt: Select[tuple[WorkflowRun]] = (
            select(WorkflowRun)
            .where(WorkflowRun.status.in_(WorkflowRunStatus.ACTIVE))
            .order_by(WorkflowRun.started_at.desc(), WorkflowRun.id.asc())
        )
        return list(self._session.scalars(stmt).all())
