"""
Analytics snapshot range and read models.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from db.base import as_utc
from db.models.analytics_snapshot import AnalyticsSnapshot


class SnapshotRange(BaseModel):
    """Inclusive ``[start, end]`` window on captured_at."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _ordered(self) -> "SnapshotRange":
        if self.start > self.end:
            raise ValueError("range start must not be after range end")
        return self


class AnalyticsSnapshotRead(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    captured_at: datetime
    metrics: dict[str, float] = Field(default_factory=dict)

    @field_validator("captured_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_model(cls, snapshot: AnalyticsSnapshot) -> "AnalyticsSnapshotRead":
        return cls(id=snapshot.id, captured_at=snapshot.captured_at, metrics=dict(snapshot.metrics))


class MetricPoint(BaseModel):
    captured_at: datetime
    value: float
