"""
app/services/alert_classifier.py

Deterministic, data-driven priority classification for competitor signals.

Precedence:
    1. explicit severity on the signal, when it names a known priority
    2. first matching keyword rule, in table order
    3. ``medium``

Rules live in a JSON file (``ALERT_PRIORITY_RULES_PATH``) shaped as::

    {"rules": [{"keyword": "bonus", "priority": "high"}, ...]}

Order is significant. A missing or invalid file falls back to the built-in
table below.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from app.config import get_alert_settings
from app.domain.competitor_alerts import normalize_text
from app.schemas.competitor_alerts import CompetitorSignal
from db.models.competitor_alert import AlertPriority

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = AlertPriority.MEDIUM


@dataclass(frozen=True)
class PriorityRule:
    keyword: str
    priority: str


DEFAULT_PRIORITY_RULES: tuple[PriorityRule, ...] = (
    PriorityRule("bonus", AlertPriority.HIGH),
    PriorityRule("moved down", AlertPriority.HIGH),
    PriorityRule("lost position", AlertPriority.HIGH),
    PriorityRule("new casino", AlertPriority.HIGH),
    PriorityRule("promotion", AlertPriority.HIGH),
    PriorityRule("ranking", AlertPriority.MEDIUM),
    PriorityRule("moved up", AlertPriority.MEDIUM),
    PriorityRule("new content", AlertPriority.MEDIUM),
    PriorityRule("review", AlertPriority.MEDIUM),
    PriorityRule("backlink", AlertPriority.LOW),
    PriorityRule("meta description", AlertPriority.LOW),
    PriorityRule("layout", AlertPriority.LOW),
)


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_rules_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


def parse_priority_rules(data: object) -> tuple[PriorityRule, ...]:
    """
    Validate a decoded rules document. Raises ValueError when malformed.
    """

    if not isinstance(data, dict) or not isinstance(data.get("rules"), list):
        raise ValueError("rules document must be an object with a 'rules' list")

    rules: list[PriorityRule] = []
    for index, item in enumerate(data["rules"]):
        if not isinstance(item, dict):
            raise ValueError(f"rule #{index} must be an object")
        keyword = normalize_text(str(item.get("keyword", "")))
        priority = str(item.get("priority", "")).strip().lower()
        if not keyword:
            raise ValueError(f"rule #{index} has an empty keyword")
        if priority not in AlertPriority.ALL:
            raise ValueError(f"rule #{index} has unknown priority '{priority}'")
        rules.append(PriorityRule(keyword=keyword, priority=priority))
    return tuple(rules)


@lru_cache(maxsize=8)
def load_priority_rules(raw_path: str) -> tuple[PriorityRule, ...]:
    path = _resolve_rules_path(raw_path)
    try:
        return parse_priority_rules(json.loads(path.read_text(encoding="utf-8")))
    except FileNotFoundError:
        logger.info("Priority rules file not found path=%s; using built-in rules", path)
    except (OSError, ValueError) as exc:
        logger.warning("Invalid priority rules file path=%s error=%s; using built-in rules", path, exc)
    return DEFAULT_PRIORITY_RULES


class AlertPriorityClassifier:
    """
    Classifies a signal by explicit severity, then by ordered keyword rules.
    """

    def __init__(self, rules: tuple[PriorityRule, ...] | None = None) -> None:
        self._rules = rules if rules is not None else DEFAULT_PRIORITY_RULES

    @property
    def rules(self) -> tuple[PriorityRule, ...]:
        return self._rules

    def classify(self, signal: CompetitorSignal) -> str:
        explicit = (signal.explicit_severity or "").strip().lower()
        if explicit in AlertPriority.ALL:
            return explicit

        haystack = normalize_text(f"{signal.alert_type} {signal.message}")
        for rule in self._rules:
            if rule.keyword in haystack:
                return rule.priority
        return DEFAULT_PRIORITY


@lru_cache(maxsize=1)
def get_alert_priority_classifier() -> AlertPriorityClassifier:
    """
    Build the classifier from the configured rules file.
    """

    return AlertPriorityClassifier(load_priority_rules(get_alert_settings().priority_rules_path))
