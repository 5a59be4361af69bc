"""
db/models/competitor_alert.py

Deduplicated, priority-classified competitor change alerts.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

_DEDUPE_CONSTRAINT = "uq_competitor_alerts_dedupe_window"


class AlertPriority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = (LOW, MEDIUM, HIGH)


class CompetitorAlert(Base, TimestampMixin):
    """
    One alert per dedupe window. The window is anchored on ``detected_at``,
    the first sighting, and ``window_bucket`` records the anchor's epoch bucket.

    Repeats of the same signal inside the window bump ``occurrence_count``
    and ``last_seen_at``; ``priority`` is fixed at first insertion.
    """

    __tablename__ = "competitor_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    competitor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    dedupe_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="sha256 of competitor + alert type + normalized message",
    )
    window_bucket: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="floor(anchor detected_at epoch seconds / dedupe window seconds)",
    )
    originating_workflow_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Lookup-only reference to workflow_runs.workflow_id",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("dedupe_key", "window_bucket", name=_DEDUPE_CONSTRAINT),
        Index("ix_competitor_alerts_detected_at_id", "detected_at", "id"),
        Index("ix_competitor_alerts_dedupe_key_detected_at", "dedupe_key", "detected_at"),
        Index("ix_competitor_alerts_priority", "priority"),
        Index("ix_competitor_alerts_competitor_name", "competitor_name"),
    )
