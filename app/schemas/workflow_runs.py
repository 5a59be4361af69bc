"""
Automation-engine callback contract and workflow run read models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from db.base import as_utc
from db.models.workflow_run import WorkflowRun

WorkflowStatusLiteral = Literal["pending", "running", "completed", "failed"]


class WorkflowProgress(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    completed: int = Field(strict=True, ge=0)
    total: int = Field(strict=True, ge=0)

    @model_validator(mode="after")
    def _completed_within_total(self) -> "WorkflowProgress":
        if self.completed > self.total:
            raise ValueError(
                f"progress.completed ({self.completed}) exceeds progress.total ({self.total})"
            )
        return self


class WorkflowCallbackEvent(BaseModel):
    """
    One inbound lifecycle event. Delivery is at-least-once and unordered;
    ``seq`` orders events within one workflow id.
    """

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    workflow_id: str = Field(alias="workflowId", min_length=1, max_length=255)
    seq: int = Field(strict=True, ge=0)
    status: WorkflowStatusLiteral
    progress: WorkflowProgress
    timestamp: datetime
    error: str | None = None
    workflow_name: str | None = Field(default=None, alias="workflowName", max_length=255)

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def display_name(self) -> str:
        return self.workflow_name or self.workflow_id


class WorkflowRunRead(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    workflow_id: str
    workflow_name: str
    status: WorkflowStatusLiteral
    progress: WorkflowProgress
    started_at: datetime
    completed_at: datetime | None = None
    last_event_seq: int
    version: int
    last_error: str | None = None

    @field_validator("started_at", "completed_at")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @classmethod
    def from_model(cls, run: WorkflowRun) -> "WorkflowRunRead":
        return cls(
            id=run.id,
            workflow_id=run.workflow_id,
            workflow_name=run.workflow_name,
            status=run.status,
            progress=WorkflowProgress(completed=run.progress_completed, total=run.progress_total),
            started_at=run.started_at,
            completed_at=run.completed_at,
            last_event_seq=run.last_event_seq,
            version=run.version,
            last_error=run.last_error,
        )


class WorkflowIngestResult(BaseModel):
    """
    Outcome of one ``ingest_event`` call.

    ``stale`` events are absorbed without touching state; ``run`` then holds
    the current stored view.
    """

    outcome: Literal["created", "applied", "stale"]
    run: WorkflowRunRead

    @property
    def changed(self) -> bool:
        return self.outcome != "stale"
