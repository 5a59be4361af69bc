"""
app/domain package marker.
"""

from app.domain.competitor_alerts import (
    AlertIdentity,
    compute_dedupe_key,
    identify_signal,
    normalize_text,
    window_bucket,
)
from app.domain.workflow_runs import (
    ensure_newer_sequence,
    ensure_transition,
    is_transition_allowed,
)

__all__ = [
    "AlertIdentity",
    "compute_dedupe_key",
    "ensure_newer_sequence",
    "ensure_transition",
    "identify_signal",
    "is_transition_allowed",
    "normalize_text",
    "window_bucket",
]
