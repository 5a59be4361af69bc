"""
db/models/workflow_run.py

Workflow run model: one tracked execution of a named automation workflow.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class WorkflowRunStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, RUNNING, COMPLETED, FAILED)
    TERMINAL = frozenset({COMPLETED, FAILED})
    ACTIVE = (PENDING, RUNNING)


class WorkflowRun(Base, TimestampMixin):
    """
    Authoritative state of one workflow execution.

    ``version`` is maintained by the mapper (``version_id_col``): every UPDATE
    is issued as ``... WHERE id = :id AND version = :expected`` and raises
    ``StaleDataError`` when another writer got there first.
    """

    __tablename__ = "workflow_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    workflow_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Automation-engine identifier for this execution",
    )
    workflow_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=WorkflowRunStatus.PENDING,
    )
    progress_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_event_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("workflow_id", name="uq_workflow_runs_workflow_id"),
        CheckConstraint(
            "progress_completed >= 0 AND progress_completed <= progress_total",
            name="ck_workflow_runs_progress_bounds",
        ),
        Index("ix_workflow_runs_status", "status"),
        Index("ix_workflow_runs_status_started_at", "status", "started_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in WorkflowRunStatus.TERMINAL
