"""
app/services/competitor_alert_aggregator.py

Deduplicating ingestion of competitor-change signals.

A signal is identified by ``dedupe_key``, the hash of competitor, alert type
and normalized message. Each alert opens a window anchored on its first
``detected_at``; a signal whose ``detected_at`` lies within the window of an
existing alert for its key merges into it and increments ``occurrence_count``.
Otherwise it inserts a new classified alert, which anchors a new window.

Writers of one key are serialized with a PostgreSQL advisory lock. The unique
``(dedupe_key, window_bucket)`` constraint, where ``window_bucket`` is the
epoch-aligned bucket of the anchor, catches any insert race the lock does not
cover; the loser retries and merges.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from datetime import timedelta
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session, sessionmaker

from app.cache.coordinator import CacheCoordinator, get_cache_coordinator
from app.config import AlertSettings, StoreSettings, get_alert_settings, get_store_settings
from app.domain.competitor_alerts import identify_signal
from app.errors import EventValidationError, NotFoundError
from app.logging_utils import log_event, payload_digest
from app.schemas.competitor_alerts import (
    AlertFilter,
    AlertIngestResult,
    AlertPage,
    CompetitorAlertRead,
    CompetitorSignal,
    PageRequest,
)
from app.services.alert_classifier import AlertPriorityClassifier, get_alert_priority_classifier
from app.services.retry import call_with_backoff, retry_on_conflict
from db.repositories.competitor_alert_repository import CompetitorAlertRepository

logger = logging.getLogger(__name__)

ALERT_LIST_NAMESPACE = "competitor_alerts:list"


def competitor_alert_cache_key(alert_id: uuid.UUID | str) -> str:
    return f"competitor_alert:{alert_id}"


def _list_cache_key(alert_filter: AlertFilter, page: PageRequest) -> str:
    descriptor = json.dumps(
        {
            "filter": alert_filter.model_dump(mode="json"),
            "page": page.page,
            "page_size": page.page_size,
        },
        sort_keys=True,
    )
    return f"{ALERT_LIST_NAMESPACE}:{hashlib.sha256(descriptor.encode('utf-8')).hexdigest()[:24]}"


class CompetitorAlertAggregator:
    """
    Ingests raw competitor signals and serves paginated alert listings.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        cache: CacheCoordinator | None = None,
        classifier: AlertPriorityClassifier | None = None,
        settings: AlertSettings | None = None,
        store_settings: StoreSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._cache = cache or get_cache_coordinator()
        self._classifier = classifier or get_alert_priority_classifier()
        self._settings = settings or get_alert_settings()
        self._store_settings = store_settings or get_store_settings()
        self._window_seconds = self._settings.dedupe_window_hours * 3600.0
        self._window = timedelta(seconds=self._window_seconds)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_raw(self, raw_event: CompetitorSignal | Mapping[str, Any]) -> AlertIngestResult:
        """
        Merge ``raw_event`` into the alert whose window covers it, or create one.
        """

        signal = self.validate_signal(raw_event)
        identity = identify_signal(
            competitor_name=signal.competitor_name,
            alert_type=signal.alert_type,
            message=signal.message,
            detected_at=signal.detected_at,
            window_seconds=self._window_seconds,
        )

        result = retry_on_conflict(
            lambda: call_with_backoff(
                lambda: self._apply_once(signal, identity.dedupe_key, identity.window_bucket),
                settings=self._store_settings,
                description="competitor_alert.ingest",
                sleep=self._sleep,
            ),
            max_attempts=self._settings.max_conflict_attempts,
            description=f"competitor_alert.ingest[{identity.dedupe_key[:12]}]",
        )

        self._cache.invalidate_many(competitor_alert_cache_key(result.alert.id), ALERT_LIST_NAMESPACE)
        log_event(
            logger,
            logging.INFO,
            "competitor_signal_ingested",
            competitor=signal.competitor_name,
            alert_type=signal.alert_type,
            outcome=result.outcome,
            priority=result.alert.priority,
            occurrence_count=result.alert.occurrence_count,
            window_bucket=identity.window_bucket,
        )
        return result

    def classify(self, raw_event: CompetitorSignal | Mapping[str, Any]) -> str:
        return self._classifier.classify(self.validate_signal(raw_event))

    def validate_signal(self, raw_event: CompetitorSignal | Mapping[str, Any]) -> CompetitorSignal:
        if isinstance(raw_event, CompetitorSignal):
            return raw_event
        try:
            return CompetitorSignal.model_validate(raw_event)
        except PydanticValidationError as exc:
            digest = payload_digest(raw_event)
            logger.warning(
                "Rejected malformed competitor signal digest=%s errors=%s",
                digest,
                exc.error_count(),
            )
            raise EventValidationError(
                f"Malformed competitor signal: {exc.error_count()} validation error(s).",
                context={"digest": digest, "errors": exc.errors(include_url=False, include_input=False)},
            ) from exc

    def _apply_once(self, signal: CompetitorSignal, dedupe_key: str, bucket: int) -> AlertIngestResult:
        with self._session_factory() as db:
            with db.begin():
                repository = CompetitorAlertRepository(db)
                repository.lock_dedupe_key(dedupe_key)
                existing = repository.find_open_alert(
                    dedupe_key=dedupe_key,
                    detected_at=signal.detected_at,
                    window=self._window,
                )
                if existing is not None:
                    repository.record_repeat(existing, seen_at=signal.detected_at)
                    return AlertIngestResult(outcome="merged", alert=CompetitorAlertRead.from_model(existing))

                alert = repository.create_alert(
                    competitor_name=signal.competitor_name,
                    alert_type=signal.alert_type,
                    message=signal.message,
                    priority=self._classifier.classify(signal),
                    detected_at=signal.detected_at,
                    dedupe_key=dedupe_key,
                    window_bucket=bucket,
                    originating_workflow_id=signal.originating_workflow_id,
                )
                return AlertIngestResult(outcome="created", alert=CompetitorAlertRead.from_model(alert))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_alerts(
        self,
        alert_filter: AlertFilter | None = None,
        page: PageRequest | None = None,
    ) -> AlertPage:
        """
        One page of alerts, newest detection first, ties by id ascending.
        """

        alert_filter = alert_filter or AlertFilter()
        page = page or PageRequest(page_size=self._settings.default_page_size)
        if page.page_size > self._settings.max_page_size:
            page = PageRequest(page=page.page, page_size=self._settings.max_page_size)

        def load() -> dict[str, Any]:
            return call_with_backoff(
                lambda: self._load_page(alert_filter, page),
                settings=self._store_settings,
                description="competitor_alert.list",
                sleep=self._sleep,
            )

        payload = self._cache.get(_list_cache_key(alert_filter, page), load, namespace=ALERT_LIST_NAMESPACE)
        return AlertPage.model_validate(payload)

    def get_alert(self, alert_id: uuid.UUID) -> CompetitorAlertRead:
        def load() -> dict[str, Any]:
            return call_with_backoff(
                lambda: self._load_alert(alert_id),
                settings=self._store_settings,
                description="competitor_alert.get",
                sleep=self._sleep,
            )

        return CompetitorAlertRead.model_validate(self._cache.get(competitor_alert_cache_key(alert_id), load))

    def _load_page(self, alert_filter: AlertFilter, page: PageRequest) -> dict[str, Any]:
        with self._session_factory() as db:
            alerts, total = CompetitorAlertRepository(db).list_alerts(
                priority=alert_filter.priority,
                detected_from=alert_filter.detected_from,
                detected_to=alert_filter.detected_to,
                offset=page.offset,
                limit=page.page_size,
            )
            return AlertPage(
                items=[CompetitorAlertRead.from_model(alert) for alert in alerts],
                total=total,
                page=page.page,
                page_size=page.page_size,
            ).model_dump(mode="json")

    def _load_alert(self, alert_id: uuid.UUID) -> dict[str, Any]:
        with self._session_factory() as db:
            alert = CompetitorAlertRepository(db).get_alert(alert_id)
            if alert is None:
                raise NotFoundError(
                    f"Competitor alert '{alert_id}' not found.",
                    context={"alert_id": str(alert_id)},
                )
            return CompetitorAlertRead.from_model(alert).model_dump(mode="json")


@lru_cache(maxsize=1)
def get_competitor_alert_aggregator() -> CompetitorAlertAggregator:
    """
    Build and cache the competitor alert aggregator.
    """

    return CompetitorAlertAggregator()
