"""
Competitor signal intake and alert listing endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import ValidationError

from app.api.errors import to_http_exception
from app.config import AlertSettings, get_alert_settings
from app.errors import CoreError
from app.schemas.competitor_alerts import AlertFilter, AlertPage, PageRequest, PriorityLiteral
from app.schemas.ingestion import IngestionAcceptedResponse
from app.services.competitor_alert_aggregator import (
    CompetitorAlertAggregator,
    get_competitor_alert_aggregator,
)
from app.services.ingestion_queue import COMPETITOR_SIGNAL, IngestionQueue, get_ingestion_queue
from app.services.query_gateway import DashboardQueryGateway, get_query_gateway

router = APIRouter(tags=["competitors"])


@router.post(
    "/competitors/signals",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=IngestionAcceptedResponse,
)
def receive_competitor_signal(
    payload: dict[str, Any] = Body(...),
    aggregator: CompetitorAlertAggregator = Depends(get_competitor_alert_aggregator),
    ingestion_queue: IngestionQueue = Depends(get_ingestion_queue),
) -> IngestionAcceptedResponse:
    try:
        signal = aggregator.validate_signal(payload)
        ingestion_queue.submit(COMPETITOR_SIGNAL, signal)
    except CoreError as exc:
        raise to_http_exception(exc) from exc

    return IngestionAcceptedResponse(kind=COMPETITOR_SIGNAL, queue_depth=ingestion_queue.depth())


@router.get("/competitors/alerts", response_model=AlertPage)
def list_competitor_alerts(
    priority: PriorityLiteral | None = Query(default=None),
    detected_from: datetime | None = Query(default=None, alias="from"),
    detected_to: datetime | None = Query(default=None, alias="to"),
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
    gateway: DashboardQueryGateway = Depends(get_query_gateway),
    settings: AlertSettings = Depends(get_alert_settings),
) -> AlertPage:
    """
    One page of alerts, newest detection first. ``page_size`` is capped server-side.
    """
    try:
        alert_filter = AlertFilter(priority=priority, detected_from=detected_from, detected_to=detected_to)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"kind": "validation_error", "message": str(exc), "retryable": False},
        ) from exc

    page_request = PageRequest(page=page, page_size=page_size or settings.default_page_size)

    try:
        return gateway.list_alerts(alert_filter, page_request)
    except CoreError as exc:
        raise to_http_exception(exc) from exc
