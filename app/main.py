from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.schemas.health import HealthResponse
from app.schemas.ingestion import IngestionQueueStatus


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - No empty-string values are accepted.
    - SQLite and local database fallbacks are not permitted.
    - REDIS_URL is required whenever CACHE_BACKEND=redis.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = os.getenv("DATABASE_URL", "").strip()
    cloud_database_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    if not database_url and not cloud_database_url:
        errors.append(
            "No database URL configured. Set DATABASE_URL or CLOUD_DATABASE_URL. "
            "SQLite and local database fallbacks are not permitted."
        )

    # --- Cache backend --------------------------------------------------
    cache_backend = os.getenv("CACHE_BACKEND", "memory").strip().lower()
    if cache_backend not in {"memory", "redis"}:
        errors.append(
            f"CACHE_BACKEND='{cache_backend}' is not valid. Allowed values: ['memory', 'redis']."
        )
    elif cache_backend == "redis" and not os.getenv("REDIS_URL", "").strip():
        errors.append(
            "REDIS_URL is not set but CACHE_BACKEND is redis. "
            "Set REDIS_URL or use CACHE_BACKEND=memory for a single instance."
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed: missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.session import SessionLocal

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    Every table registered on Base.metadata must exist in the database.
    If any are missing, log a critical error and abort startup so that
    the operator is forced to run migrations before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


def _database_reachable() -> bool:
    try:
        _check_db()
    except RuntimeError:
        logging.getLogger(__name__).warning("Health check: database unreachable", exc_info=True)
        return False
    return True


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """
    Validate DB connectivity and schema, then start the ingestion workers and
    the snapshot scheduler. Both are stopped on exit, the queue last so that
    accepted callbacks are drained.
    """
    log = logging.getLogger(__name__)
    _check_db()
    log.info("Database connectivity confirmed")
    _check_schema()
    log.info("Database schema validated")

    from app.scheduler.jobs import build_scheduler
    from app.services.ingestion_queue import get_ingestion_queue

    ingestion_queue = get_ingestion_queue()
    ingestion_queue.start()

    scheduler = build_scheduler()
    scheduler.start()
    log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        log.info("Scheduler shut down")
        ingestion_queue.stop()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Competitive Intel Monitor API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import analytics_router, competitors_router, workflows_router

    application.include_router(workflows_router)
    application.include_router(competitors_router)
    application.include_router(analytics_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse:
        from app.cache.coordinator import get_cache_coordinator
        from app.services.ingestion_queue import get_ingestion_queue

        ingestion_queue = get_ingestion_queue()
        stats = ingestion_queue.stats
        database_ok = _database_reachable()
        cache_ok = get_cache_coordinator().ping()
        return HealthResponse(
            status="ok" if database_ok and cache_ok else "degraded",
            database=database_ok,
            cache=cache_ok,
            ingestion_queue=IngestionQueueStatus(
                running=ingestion_queue.running,
                depth=ingestion_queue.depth(),
                processed=stats.processed,
                failed=stats.failed,
                rejected=stats.rejected,
                retried=stats.retried,
                dead_lettered=stats.dead_lettered,
            ),
        )

    return application


app = create_app()
