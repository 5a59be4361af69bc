"""
Analytics snapshot history endpoints.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from app.api.errors import to_http_exception
from app.errors import CoreError
from app.schemas.analytics import AnalyticsSnapshotRead, MetricPoint, SnapshotRange
from app.services.query_gateway import DashboardQueryGateway, get_query_gateway

router = APIRouter(tags=["analytics"])


def get_snapshot_range(
    start: datetime = Query(..., description="Inclusive lower bound on captured_at"),
    end: datetime = Query(..., description="Inclusive upper bound on captured_at"),
) -> SnapshotRange:
    try:
        return SnapshotRange(start=start, end=end)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"kind": "validation_error", "message": str(exc), "retryable": False},
        ) from exc


@router.get("/analytics/snapshots", response_model=list[AnalyticsSnapshotRead])
def list_snapshots(
    snapshot_range: SnapshotRange = Depends(get_snapshot_range),
    gateway: DashboardQueryGateway = Depends(get_query_gateway),
) -> list[AnalyticsSnapshotRead]:
    try:
        return gateway.collect_snapshots(snapshot_range)
    except CoreError as exc:
        raise to_http_exception(exc) from exc


@router.get("/analytics/series/{metric}", response_model=list[MetricPoint])
def get_metric_series(
    metric: str,
    snapshot_range: SnapshotRange = Depends(get_snapshot_range),
    gateway: DashboardQueryGateway = Depends(get_query_gateway),
) -> list[MetricPoint]:
    try:
        return gateway.get_metric_series(metric, snapshot_range)
    except CoreError as exc:
        raise to_http_exception(exc) from exc
