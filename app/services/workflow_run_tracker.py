"""
app/services/workflow_run_tracker.py

Lifecycle tracking for automation workflow runs.

Events arrive at-least-once and in any order. Each event is applied under
optimistic concurrency on the run's ``version`` column:

1. stale ``seq`` (<= last applied) -> idempotent no-op
2. illegal status move              -> InvalidTransitionError, nothing written
3. otherwise                         -> version-guarded UPDATE, then cache
                                        invalidation of the run and the
                                        active-runs aggregate
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session, sessionmaker

from app.cache.coordinator import CacheCoordinator, get_cache_coordinator
from app.config import (
    StoreSettings,
    WorkflowTrackerSettings,
    get_store_settings,
    get_workflow_tracker_settings,
)
from app.domain.workflow_runs import ensure_newer_sequence, ensure_transition
from app.errors import EventValidationError, NotFoundError, StaleEventError
from app.logging_utils import log_event, payload_digest
from app.schemas.workflow_runs import WorkflowCallbackEvent, WorkflowIngestResult, WorkflowRunRead
from app.services.retry import call_with_backoff, retry_on_conflict
from db.repositories.workflow_run_repository import WorkflowRunRepository

logger = logging.getLogger(__name__)

ACTIVE_RUNS_CACHE_KEY = "workflow_runs:active"


def workflow_run_cache_key(workflow_id: str) -> str:
    return f"workflow_run:{workflow_id}"


class WorkflowRunTracker:
    """
    Applies workflow callback events to the store and serves run state.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        cache: CacheCoordinator | None = None,
        settings: WorkflowTrackerSettings | None = None,
        store_settings: StoreSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._cache = cache or get_cache_coordinator()
        self._settings = settings or get_workflow_tracker_settings()
        self._store_settings = store_settings or get_store_settings()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_event(self, event: WorkflowCallbackEvent | Mapping[str, Any]) -> WorkflowIngestResult:
        """
        Apply one callback event.

        Raises EventValidationError, InvalidTransitionError, ConflictError or
        DependencyUnavailableError. Stale events return ``outcome="stale"``.
        """

        parsed = self.validate_event(event)

        try:
            result = retry_on_conflict(
                lambda: self._with_store(lambda: self._apply_once(parsed), "workflow_run.ingest"),
                max_attempts=self._settings.max_conflict_attempts,
                description=f"workflow_run.ingest[{parsed.workflow_id}]",
            )
        except StaleEventError as exc:
            log_event(
                logger,
                logging.DEBUG,
                "workflow_event_stale",
                workflow_id=parsed.workflow_id,
                seq=parsed.seq,
                last_event_seq=exc.context.get("last_event_seq"),
            )
            return WorkflowIngestResult(outcome="stale", run=self.get_status(parsed.workflow_id))

        self._cache.invalidate_many(workflow_run_cache_key(parsed.workflow_id), ACTIVE_RUNS_CACHE_KEY)
        log_event(
            logger,
            logging.INFO,
            "workflow_event_applied",
            workflow_id=parsed.workflow_id,
            seq=parsed.seq,
            status=result.run.status,
            outcome=result.outcome,
            version=result.run.version,
        )
        return result

    def validate_event(self, event: WorkflowCallbackEvent | Mapping[str, Any]) -> WorkflowCallbackEvent:
        if isinstance(event, WorkflowCallbackEvent):
            return event
        try:
            return WorkflowCallbackEvent.model_validate(event)
        except PydanticValidationError as exc:
            digest = payload_digest(event)
            logger.warning(
                "Rejected malformed workflow event digest=%s errors=%s",
                digest,
                exc.error_count(),
            )
            raise EventValidationError(
                f"Malformed workflow event: {exc.error_count()} validation error(s).",
                context={"digest": digest, "errors": exc.errors(include_url=False, include_input=False)},
            ) from exc

    def _apply_once(self, event: WorkflowCallbackEvent) -> WorkflowIngestResult:
        with self._session_factory() as db:
            with db.begin():
                repository = WorkflowRunRepository(db)
                run = repository.get_by_workflow_id(event.workflow_id)

                if run is None:
                    run = repository.create_run(
                        workflow_id=event.workflow_id,
                        workflow_name=event.display_name,
                        status=event.status,
                        progress_completed=event.progress.completed,
                        progress_total=event.progress.total,
                        seq=event.seq,
                        occurred_at=event.timestamp,
                        error=event.error,
                    )
                    return WorkflowIngestResult(outcome="created", run=WorkflowRunRead.from_model(run))

                ensure_newer_sequence(
                    workflow_id=event.workflow_id,
                    last_seq=run.last_event_seq,
                    seq=event.seq,
                )
                ensure_transition(
                    workflow_id=event.workflow_id,
                    current=run.status,
                    requested=event.status,
                )
                repository.apply_event(
                    run,
                    status=event.status,
                    progress_completed=event.progress.completed,
                    progress_total=event.progress.total,
                    seq=event.seq,
                    occurred_at=event.timestamp,
                    error=event.error,
                )
                return WorkflowIngestResult(outcome="applied", run=WorkflowRunRead.from_model(run))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_status(self, workflow_id: str) -> WorkflowRunRead:
        """
        Read-through lookup of one run. Raises NotFoundError for unknown ids.
        """

        def load() -> dict[str, Any]:
            return self._with_store(lambda: self._load_run(workflow_id), "workflow_run.get")

        payload = self._cache.get(workflow_run_cache_key(workflow_id), load)
        return WorkflowRunRead.model_validate(payload)

    def list_active(self) -> list[WorkflowRunRead]:
        """
        Non-terminal runs, newest first, served from the cached aggregate.
        """

        def load() -> list[dict[str, Any]]:
            return self._with_store(self._load_active, "workflow_run.list_active")

        payload = self._cache.get(ACTIVE_RUNS_CACHE_KEY, load)
        return [WorkflowRunRead.model_validate(item) for item in payload]

    def _load_run(self, workflow_id: str) -> dict[str, Any]:
        with self._session_factory() as db:
            run = WorkflowRunRepository(db).get_by_workflow_id(workflow_id)
            if run is None:
                raise NotFoundError(
                    f"Workflow run '{workflow_id}' not found.",
                    context={"workflow_id": workflow_id},
                )
            return WorkflowRunRead.from_model(run).model_dump(mode="json")

    def _load_active(self) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            runs = WorkflowRunRepository(db).list_active()
            return [WorkflowRunRead.from_model(run).model_dump(mode="json") for run in runs]

    def _with_store(self, operation: Callable[[], Any], description: str) -> Any:
        return call_with_backoff(
            operation,
            settings=self._store_settings,
            description=description,
            sleep=self._sleep,
        )


@lru_cache(maxsize=1)
def get_workflow_run_tracker() -> WorkflowRunTracker:
    """
    Build and cache the workflow run tracker.
    """

    return WorkflowRunTracker()
