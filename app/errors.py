"""
app/errors.py

Error taxonomy shared by the ingestion and query paths.

Every surfaced error carries a stable ``kind`` and a human-readable message.
``retryable`` tells callers whether repeating the same call can succeed
(conflicts and unavailable dependencies) or not (bad input, illegal moves,
unknown ids).
"""

from __future__ import annotations

from typing import Any


class CoreError(Exception):
    """
    Base exception for reconciliation-core failures.
    """

    kind: str = "core_error"
    retryable: bool = False

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        context_str = f", context={self.context}" if self.context else ""
        return f"{self.__class__.__name__}({self.message!r}{context_str})"

    def to_payload(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "retryable": self.retryable}


class EventValidationError(CoreError):
    """Raised when an inbound event is malformed. Never retried."""

    kind = "validation_error"


class StaleEventError(CoreError):
    """
    Duplicate or out-of-order event.

    Absorbed by the tracker as an idempotent no-op; callers only ever see a
    ``stale`` outcome.
    """

    kind = "stale_event"


class InvalidTransitionError(CoreError):
    """Raised when a status move is not permitted from the current status."""

    kind = "invalid_transition"


class ConflictError(CoreError):
    """Raised when optimistic-concurrency retries are exhausted."""

    kind = "conflict"
    retryable = True


class NotFoundError(CoreError):
    """Raised when an entity id has never been seen."""

    kind = "not_found"


class DependencyUnavailableError(CoreError):
    """Raised when the store (or a required cache call) stays unreachable after retries."""

    kind = "dependency_unavailable"
    retryable = True


class IngestionQueueFullError(CoreError):
    """Raised when the inbound ingestion queue rejects new work."""

    kind = "queue_full"
    retryable = True
