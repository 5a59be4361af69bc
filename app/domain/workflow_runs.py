"""
app/domain/workflow_runs.py

Workflow run lifecycle rules.

    pending -> running -> {completed, failed}

``running -> running`` (and ``pending -> pending``) carry progress updates.
Moves may skip forward because the automation engine can lose intermediate
callbacks; they never go backward, and terminal states accept nothing.
"""

from __future__ import annotations

from app.errors import InvalidTransitionError, StaleEventError
from db.models.workflow_run import WorkflowRunStatus

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    WorkflowRunStatus.PENDING: frozenset(
        {
            WorkflowRunStatus.PENDING,
            WorkflowRunStatus.RUNNING,
            WorkflowRunStatus.COMPLETED,
            WorkflowRunStatus.FAILED,
        }
    ),
    WorkflowRunStatus.RUNNING: frozenset(
        {
            WorkflowRunStatus.RUNNING,
            WorkflowRunStatus.COMPLETED,
            WorkflowRunStatus.FAILED,
        }
    ),
    WorkflowRunStatus.COMPLETED: frozenset(),
    WorkflowRunStatus.FAILED: frozenset(),
}


def is_transition_allowed(current: str, requested: str) -> bool:
    return requested in _ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(*, workflow_id: str, current: str, requested: str) -> None:
    """
    Raise InvalidTransitionError when ``requested`` is not reachable from ``current``.
    """

    if not is_transition_allowed(current, requested):
        raise InvalidTransitionError(
            f"Workflow '{workflow_id}' cannot move from '{current}' to '{requested}'.",
            context={"workflow_id": workflow_id, "current": current, "requested": requested},
        )


def ensure_newer_sequence(*, workflow_id: str, last_seq: int, seq: int) -> None:
    """
    Raise StaleEventError for duplicate or out-of-order deliveries.
    """

    if seq <= last_seq:
        raise StaleEventError(
            f"Event seq={seq} for workflow '{workflow_id}' is not newer than seq={last_seq}.",
            context={"workflow_id": workflow_id, "seq": seq, "last_event_seq": last_seq},
        )
