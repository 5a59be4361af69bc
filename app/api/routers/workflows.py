"""
Workflow callback intake and run-status endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from app.api.errors import to_http_exception
from app.errors import CoreError
from app.schemas.ingestion import IngestionAcceptedResponse
from app.schemas.workflow_runs import WorkflowRunRead
from app.services.ingestion_queue import WORKFLOW_EVENT, IngestionQueue, get_ingestion_queue
from app.services.query_gateway import DashboardQueryGateway, get_query_gateway
from app.services.workflow_run_tracker import WorkflowRunTracker, get_workflow_run_tracker

router = APIRouter(tags=["workflows"])


@router.post(
    "/workflows/events",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=IngestionAcceptedResponse,
)
def receive_workflow_event(
    payload: dict[str, Any] = Body(...),
    tracker: WorkflowRunTracker = Depends(get_workflow_run_tracker),
    ingestion_queue: IngestionQueue = Depends(get_ingestion_queue),
) -> IngestionAcceptedResponse:
    """
    Validate a callback and queue it for application.

    Malformed payloads are rejected with 422 before queueing; a saturated
    queue answers 503 so the sender retries.
    """
    try:
        event = tracker.validate_event(payload)
        ingestion_queue.submit(WORKFLOW_EVENT, event)
    except CoreError as exc:
        raise to_http_exception(exc) from exc

    return IngestionAcceptedResponse(kind=WORKFLOW_EVENT, queue_depth=ingestion_queue.depth())


@router.get("/workflows/active", response_model=list[WorkflowRunRead])
def list_active_workflows(
    gateway: DashboardQueryGateway = Depends(get_query_gateway),
) -> list[WorkflowRunRead]:
    try:
        return gateway.list_active()
    except CoreError as exc:
        raise to_http_exception(exc) from exc


@router.get("/workflows/{workflow_id}", response_model=WorkflowRunRead)
def get_workflow_status(
    workflow_id: str,
    gateway: DashboardQueryGateway = Depends(get_query_gateway),
) -> WorkflowRunRead:
    try:
        return gateway.get_status(workflow_id)
    except CoreError as exc:
        raise to_http_exception(exc) from exc
