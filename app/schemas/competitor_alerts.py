"""
Competitor-signal contract, alert filters and alert read models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from db.base import as_utc
from db.models.competitor_alert import CompetitorAlert

PriorityLiteral = Literal["low", "medium", "high"]


class CompetitorSignal(BaseModel):
    """
    Raw competitor-change signal. ``explicitSeverity`` is kept as free text;
    the classifier decides whether it is a usable priority.
    """

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    competitor_name: str = Field(alias="competitorName", min_length=1, max_length=255)
    alert_type: str = Field(alias="alertType", min_length=1, max_length=255)
    message: str = Field(min_length=1)
    detected_at: datetime = Field(alias="detectedAt")
    explicit_severity: str | None = Field(default=None, alias="explicitSeverity")
    originating_workflow_id: str | None = Field(
        default=None,
        alias="originatingWorkflowId",
        max_length=255,
    )

    @field_validator("detected_at")
    @classmethod
    def _detected_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class AlertFilter(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    priority: PriorityLiteral | None = None
    detected_from: datetime | None = Field(default=None, alias="from")
    detected_to: datetime | None = Field(default=None, alias="to")

    @field_validator("detected_from", "detected_to")
    @classmethod
    def _bounds_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _ordered_bounds(self) -> "AlertFilter":
        if (
            self.detected_from is not None
            and self.detected_to is not None
            and self.detected_from > self.detected_to
        ):
            raise ValueError("'from' must not be after 'to'")
        return self


class PageRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class CompetitorAlertRead(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    competitor_name: str
    alert_type: str
    message: str
    priority: PriorityLiteral
    detected_at: datetime
    last_seen_at: datetime
    occurrence_count: int
    dedupe_key: str
    originating_workflow_id: str | None = None

    @field_validator("detected_at", "last_seen_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_model(cls, alert: CompetitorAlert) -> "CompetitorAlertRead":
        return cls.model_validate(alert)


class AlertPage(BaseModel):
    items: list[CompetitorAlertRead] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)


class AlertIngestResult(BaseModel):
    outcome: Literal["created", "merged"]
    alert: CompetitorAlertRead
