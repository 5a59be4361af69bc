"""
db/models/analytics_snapshot.py

Immutable point-in-time rollups of aggregate counters.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONPayload


class AnalyticsSnapshot(Base):
    """
    One row per capture. Rows are inserted once and never updated, so there
    is no version column. ``captured_at`` is unique and orders the series.

    ``metrics`` example::

        {"runs_active": 2, "alerts_high_priority": 7, "competitors_monitored": 52}
    """

    __tablename__ = "analytics_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        unique=True,
        index=True,
    )
    metrics: Mapped[dict[str, Any]] = mapped_column(
        JSONPayload,
        nullable=False,
        comment="Metric name to numeric value",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
