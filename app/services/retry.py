"""
app/services/retry.py

Bounded retry loops for store calls.

Two independent policies:

* ``call_with_backoff`` retries transient store failures (timeouts, dropped
  connections, pool exhaustion) with exponential backoff, then raises
  ``DependencyUnavailableError``.
* ``retry_on_conflict`` re-runs an optimistic read-modify-write when another
  writer won the race (version mismatch or unique-key collision), then raises
  ``ConflictError``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from app.config import StoreSettings
from app.errors import ConflictError, DependencyUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STORE_ERRORS: tuple[type[Exception], ...] = (
    OperationalError,
    InterfaceError,
    PoolTimeoutError,
    TimeoutError,
)

CONFLICT_ERRORS: tuple[type[Exception], ...] = (StaleDataError, IntegrityError)


def call_with_backoff(
    operation: Callable[[], T],
    *,
    settings: StoreSettings,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation``, retrying transient store failures with exponential backoff.
    """

    last_error: Exception | None = None
    for attempt in range(settings.max_retries + 1):
        try:
            return operation()
        except TRANSIENT_STORE_ERRORS as exc:
            last_error = exc

        if attempt >= settings.max_retries:
            break

        backoff_seconds = settings.backoff_initial_seconds * (settings.backoff_multiplier**attempt)
        logger.warning(
            "Store call retry operation=%s attempt=%s/%s wait_seconds=%.2f error=%s",
            description,
            attempt + 1,
            settings.max_retries,
            backoff_seconds,
            last_error,
        )
        sleep(backoff_seconds)

    logger.error(
        "Store call exhausted retries operation=%s error=%s",
        description,
        last_error,
    )
    raise DependencyUnavailableError(
        f"{description}: store unavailable after {settings.max_retries + 1} attempt(s).",
        context={"operation": description},
    ) from last_error


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    max_attempts: int,
    description: str,
) -> T:
    """
    Re-run an optimistic read-modify-write until it commits or attempts run out.
    """

    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except CONFLICT_ERRORS as exc:
            last_error = exc
            logger.info(
                "Optimistic write conflict operation=%s attempt=%s/%s error=%s",
                description,
                attempt,
                max_attempts,
                exc.__class__.__name__,
            )

    raise ConflictError(
        f"{description}: concurrent modification persisted after {max_attempts} attempt(s).",
        context={"operation": description, "attempts": max_attempts},
    ) from last_error
