"""
app/domain/competitor_alerts.py

Signal normalization, dedupe keys and window bucketing for competitor alerts.
"""

from __future__ import annotations

import hashlib
import math
import re
from dataclasses import dataclass
from datetime import datetime

from db.base import as_utc

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """
    Case-fold and collapse runs of whitespace to one space.
    """

    return _WHITESPACE_RE.sub(" ", value.casefold()).strip()


def compute_dedupe_key(*, competitor_name: str, alert_type: str, message: str) -> str:
    """
    Stable sha256 hex digest identifying "the same signal" irrespective of
    casing and whitespace.
    """

    parts = (normalize_text(competitor_name), normalize_text(alert_type), normalize_text(message))
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()


def window_bucket(detected_at: datetime, *, window_seconds: float) -> int:
    """
    Index of the epoch-aligned bucket containing ``detected_at``. Recorded for
    the anchor of each alert window.
    """

    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    return math.floor(as_utc(detected_at).timestamp() / window_seconds)


@dataclass(frozen=True)
class AlertIdentity:
    """
    Where one signal lands in the alert table.
    """

    dedupe_key: str
    window_bucket: int


def identify_signal(
    *,
    competitor_name: str,
    alert_type: str,
    message: str,
    detected_at: datetime,
    window_seconds: float,
) -> AlertIdentity:
    return AlertIdentity(
        dedupe_key=compute_dedupe_key(
            competitor_name=competitor_name,
            alert_type=alert_type,
            message=message,
        ),
        window_bucket=window_bucket(detected_at, window_seconds=window_seconds),
    )
