"""
Schemas for the asynchronous ingestion endpoints.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class IngestionAcceptedResponse(BaseModel):
    kind: Literal["workflow_event", "competitor_signal"]
    queue_depth: int = Field(..., ge=0)


class IngestionQueueStatus(BaseModel):
    running: bool
    depth: int = Field(..., ge=0)
    processed: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    rejected: int = Field(..., ge=0)
    retried: int = Field(..., ge=0)
    dead_lettered: int = Field(..., ge=0)
