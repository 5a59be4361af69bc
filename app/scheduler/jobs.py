"""
app/scheduler/jobs.py

APScheduler-based schedule for analytics snapshot capture.

Schedule
--------
  analytics_snapshot_capture: every SNAPSHOT_INTERVAL_MINUTES (default 15)

Overlap
-------
``max_instances=1`` keeps this scheduler from starting a second run while one
is executing; ``AnalyticsSnapshotStore.capture`` additionally skips when a
capture is in flight elsewhere, so overlapping triggers are no-ops.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import SnapshotSettings, get_snapshot_settings
from app.errors import CoreError
from app.services.analytics_snapshot_store import AnalyticsSnapshotStore, get_analytics_snapshot_store

logger = logging.getLogger(__name__)

SNAPSHOT_JOB_ID = "analytics_snapshot_capture"


def run_snapshot_capture(store: AnalyticsSnapshotStore | None = None) -> None:
    """
    Capture one analytics snapshot. Failures are logged; the next tick retries.
    """
    store = store or get_analytics_snapshot_store()
    logger.info("Scheduler: %s starting", SNAPSHOT_JOB_ID)
    try:
        snapshot = store.capture()
    except CoreError as exc:
        logger.warning("Scheduler: %s failed kind=%s: %s", SNAPSHOT_JOB_ID, exc.kind, exc)
        return

    if snapshot is None:
        logger.info("Scheduler: %s skipped", SNAPSHOT_JOB_ID)
        return
    logger.info(
        "Scheduler: %s complete snapshot_id=%s captured_at=%s",
        SNAPSHOT_JOB_ID,
        snapshot.id,
        snapshot.captured_at.isoformat(),
    )


def build_scheduler(settings: SnapshotSettings | None = None) -> BackgroundScheduler:
    """
    Build and register the periodic snapshot job.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    settings = settings or get_snapshot_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    if not settings.enabled:
        logger.info("Scheduler: snapshot capture disabled")
        return scheduler

    scheduler.add_job(
        run_snapshot_capture,
        trigger="interval",
        minutes=settings.interval_minutes,
        id=SNAPSHOT_JOB_ID,
        name="Analytics snapshot capture",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=settings.interval_minutes * 60,
    )

    return scheduler
