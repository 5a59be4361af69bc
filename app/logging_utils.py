"""
Structured logging helpers for ingestion workflows.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def payload_digest(payload: Any) -> str:
    """
    Short stable digest of an inbound payload, for logging rejected events
    without echoing their content.
    """

    canonical = json.dumps(payload, default=str, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
