"""
app/services/ingestion_queue.py

Bounded inbound queue decoupling callback arrival from persistence latency.

HTTP handlers validate and ``submit``; worker threads drain the queue into the
tracker and aggregator. A full queue rejects new work immediately
(``IngestionQueueFullError``) rather than buffering without bound.

Intake has already answered 202 when a worker picks a task up, so a
retryable failure (store unavailable, unresolved conflict) is redelivered
with the store backoff policy. Tasks that exhaust their delivery attempts
are logged at ERROR with a payload digest and kept in a bounded dead-letter
buffer.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from app.config import (
    IngestionQueueSettings,
    StoreSettings,
    get_ingestion_queue_settings,
    get_store_settings,
)
from app.errors import CoreError, IngestionQueueFullError
from app.logging_utils import log_event, payload_digest

logger = logging.getLogger(__name__)

WORKFLOW_EVENT = "workflow_event"
COMPETITOR_SIGNAL = "competitor_signal"

_POLL_INTERVAL_SECONDS = 0.2
_DEAD_LETTER_CAPACITY = 500


@dataclass(frozen=True)
class IngestionTask:
    kind: str
    payload: Any
    enqueued_at: float = field(default_factory=time.monotonic)


@dataclass
class IngestionQueueStats:
    processed: int = 0
    failed: int = 0
    rejected: int = 0
    retried: int = 0
    dead_lettered: int = 0


@dataclass(frozen=True)
class DeadLetter:
    task: IngestionTask
    error_kind: str
    message: str
    attempts: int


class IngestionQueue:
    """
    Fixed-capacity task queue served by a pool of daemon worker threads.
    """

    def __init__(
        self,
        *,
        handlers: Mapping[str, Callable[[Any], Any]],
        settings: IngestionQueueSettings | None = None,
        store_settings: StoreSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._handlers = dict(handlers)
        self._settings = settings or get_ingestion_queue_settings()
        self._store_settings = store_settings or get_store_settings()
        self._sleep = sleep
        self._dead_letters: deque[DeadLetter] = deque(maxlen=_DEAD_LETTER_CAPACITY)
        self._queue: queue.Queue[IngestionTask] = queue.Queue(maxsize=self._settings.max_size)
        self._stop_event = threading.Event()
        self._workers: list[threading.Thread] = []
        self._stats = IngestionQueueStats()
        self._stats_lock = threading.Lock()

    @property
    def stats(self) -> IngestionQueueStats:
        with self._stats_lock:
            return IngestionQueueStats(
                processed=self._stats.processed,
                failed=self._stats.failed,
                rejected=self._stats.rejected,
                retried=self._stats.retried,
                dead_lettered=self._stats.dead_lettered,
            )

    def dead_letters(self) -> list[DeadLetter]:
        with self._stats_lock:
            return list(self._dead_letters)

    @property
    def running(self) -> bool:
        return any(worker.is_alive() for worker in self._workers)

    def depth(self) -> int:
        return self._queue.qsize()

    def submit(self, kind: str, payload: Any) -> None:
        """
        Enqueue one task without blocking. Raises IngestionQueueFullError when at capacity.
        """

        if kind not in self._handlers:
            raise ValueError(f"Unknown ingestion task kind: {kind!r}")
        if self._stop_event.is_set():
            raise IngestionQueueFullError(
                "Ingestion queue is shutting down; retry later.",
                context={"kind": kind},
            )
        try:
            self._queue.put_nowait(IngestionTask(kind=kind, payload=payload))
        except queue.Full as exc:
            with self._stats_lock:
                self._stats.rejected += 1
            logger.warning(
                "Ingestion queue full; rejecting task kind=%s capacity=%s",
                kind,
                self._settings.max_size,
            )
            raise IngestionQueueFullError(
                "Ingestion queue is full; retry later.",
                context={"kind": kind, "capacity": self._settings.max_size},
            ) from exc

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._workers = [
            threading.Thread(
                target=self._worker_loop,
                name=f"ingestion-worker-{index}",
                daemon=True,
            )
            for index in range(self._settings.workers)
        ]
        for worker in self._workers:
            worker.start()
        logger.info("Ingestion queue started workers=%s capacity=%s", len(self._workers), self._settings.max_size)

    def stop(self) -> None:
        """
        Stop accepting work, let workers drain what is queued, and join them
        within the configured shutdown timeout.
        """

        self._stop_event.set()
        deadline = time.monotonic() + self._settings.shutdown_timeout_seconds
        for worker in self._workers:
            worker.join(timeout=max(0.0, deadline - time.monotonic()))
        leftover = self._queue.qsize()
        if leftover:
            logger.warning("Ingestion queue stopped with %s undelivered task(s)", leftover)
        self._workers = []
        logger.info("Ingestion queue stopped")

    def drain(self, timeout_seconds: float) -> bool:
        """
        Wait until every submitted task has been processed. Returns False on timeout.
        """

        deadline = time.monotonic() + timeout_seconds
        while time.monotonic() < deadline:
            if self._queue.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        return self._queue.unfinished_tasks == 0

    def _worker_loop(self) -> None:
        while True:
            try:
                task = self._queue.get(timeout=_POLL_INTERVAL_SECONDS)
            except queue.Empty:
                if self._stop_event.is_set():
                    return
                continue
            try:
                self._process(task)
            finally:
                self._queue.task_done()

    def _process(self, task: IngestionTask) -> None:
        handler = self._handlers[task.kind]
        attempt = 1
        while True:
            try:
                handler(task.payload)
                break
            except CoreError as exc:
                if exc.retryable and attempt < self._settings.max_delivery_attempts:
                    self._record_retry(task, exc, attempt)
                    attempt += 1
                    continue
                if exc.retryable:
                    self._dead_letter(task, exc, attempt)
                    return
                with self._stats_lock:
                    self._stats.failed += 1
                log_event(
                    logger,
                    logging.WARNING,
                    "ingestion_task_failed",
                    kind=task.kind,
                    error_kind=exc.kind,
                    retryable=exc.retryable,
                    message=exc.message,
                )
                return
            except Exception:  # noqa: BLE001
                with self._stats_lock:
                    self._stats.failed += 1
                logger.exception("Ingestion task crashed kind=%s", task.kind)
                return

        with self._stats_lock:
            self._stats.processed += 1
        logger.debug(
            "Ingestion task done kind=%s attempts=%s queued_for=%.3fs",
            task.kind,
            attempt,
            time.monotonic() - task.enqueued_at,
        )

    def _record_retry(self, task: IngestionTask, exc: CoreError, attempt: int) -> None:
        # The task keeps its queue slot while this worker backs off.
        backoff_seconds = self._store_settings.backoff_initial_seconds * (
            self._store_settings.backoff_multiplier ** (attempt - 1)
        )
        with self._stats_lock:
            self._stats.retried += 1
        log_event(
            logger,
            logging.WARNING,
            "ingestion_task_retry",
            kind=task.kind,
            error_kind=exc.kind,
            attempt=attempt,
            max_attempts=self._settings.max_delivery_attempts,
            wait_seconds=round(backoff_seconds, 3),
        )
        self._sleep(backoff_seconds)

    def _dead_letter(self, task: IngestionTask, exc: CoreError, attempts: int) -> None:
        letter = DeadLetter(task=task, error_kind=exc.kind, message=exc.message, attempts=attempts)
        with self._stats_lock:
            self._stats.dead_lettered += 1
            self._dead_letters.append(letter)
        log_event(
            logger,
            logging.ERROR,
            "ingestion_task_dead_lettered",
            kind=task.kind,
            error_kind=exc.kind,
            attempts=attempts,
            digest=payload_digest(task.payload),
            message=exc.message,
        )


@lru_cache(maxsize=1)
def get_ingestion_queue() -> IngestionQueue:
    """
    Build and cache the process-wide queue wired to the tracker and aggregator.
    """

    from app.services.competitor_alert_aggregator import get_competitor_alert_aggregator
    from app.services.workflow_run_tracker import get_workflow_run_tracker

    return IngestionQueue(
        handlers={
            WORKFLOW_EVENT: get_workflow_run_tracker().ingest_event,
            COMPETITOR_SIGNAL: get_competitor_alert_aggregator().ingest_raw,
        },
    )
