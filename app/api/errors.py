"""
app/api/errors.py

Translation of core error kinds into HTTP responses.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from app.errors import CoreError

_STATUS_BY_KIND: dict[str, int] = {
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "conflict": status.HTTP_409_CONFLICT,
    "not_found": status.HTTP_404_NOT_FOUND,
    "dependency_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "queue_full": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: CoreError) -> HTTPException:
    """
    Map a core error onto an HTTPException carrying ``{kind, message, retryable}``.
    """

    headers = {"Retry-After": "1"} if exc.retryable else None
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=exc.to_payload(),
        headers=headers,
    )
