"""
Health check response.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from app.schemas.ingestion import IngestionQueueStatus


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    database: bool
    cache: bool
    ingestion_queue: IngestionQueueStatus
