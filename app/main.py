from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from pathlib import Path

from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Columns the audit state machine writes; a datasets table without them
# means migrations have not been applied.
_AUDIT_COLUMNS = frozenset(
    {
        "quality_status",
        "quality_audit_requested_at",
        "quality_audit_completed_at",
        "quality_report",
    }
)


def _validate_env() -> None:
    """
    Validate environment variables before anything touches the database or
    the model provider.

    Every problem is collected and reported in one RuntimeError.

    Rules:
    - A database URL must be configured, for PostgreSQL or SQLite.
    - LLM_ADAPTER must be known; a real adapter needs an API key.
    - TASK_QUEUE_BACKEND must be known; the http backend needs SERVICE_URL.
    """

    from app.config import (
        LLM_ADAPTERS,
        TASK_QUEUE_BACKENDS,
        database_url_from_env,
        load_env_files,
        to_sqlalchemy_url,
    )

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = database_url_from_env()
    if database_url is None:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL "
            "or LOCAL_DATABASE_URL."
        )
    else:
        try:
            to_sqlalchemy_url(database_url)
        except ValueError as exc:
            errors.append(str(exc))

    # --- LLM adapter ----------------------------------------------------
    adapter = os.getenv("LLM_ADAPTER", "openai").strip().lower()
    if adapter not in LLM_ADAPTERS:
        errors.append(
            f"LLM_ADAPTER='{adapter}' is not valid. Allowed values: {sorted(LLM_ADAPTERS)}."
        )
    elif adapter != "mock" and not (
        os.getenv("LLM_API_KEY", "").strip() or os.getenv("OPENAI_API_KEY", "").strip()
    ):
        errors.append(
            f"LLM_ADAPTER='{adapter}' needs LLM_API_KEY or OPENAI_API_KEY. "
            "Use LLM_ADAPTER=mock for local runs without a provider."
        )

    # --- Task queue -----------------------------------------------------
    backend = os.getenv("TASK_QUEUE_BACKEND", "background").strip().lower()
    if backend not in TASK_QUEUE_BACKENDS:
        errors.append(
            f"TASK_QUEUE_BACKEND='{backend}' is not valid. "
            f"Allowed values: {sorted(TASK_QUEUE_BACKENDS)}."
        )
    elif backend == "http" and not os.getenv("SERVICE_URL", "").strip():
        errors.append(
            "SERVICE_URL is not set but TASK_QUEUE_BACKEND is http. "
            "Set SERVICE_URL to the base URL the worker endpoint is served from."
        )

    if errors:
        raise RuntimeError(
            "Quality audit service cannot start:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Root logging for the API process. Provider client chatter is capped at
    WARNING so audit events stay readable.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    for noisy in ("httpx", "openai", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _check_database() -> None:
    """
    Fail startup unless the datasets table exists with its audit columns.

    Does not migrate; run ``alembic upgrade head`` first.
    """

    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy.exc import SQLAlchemyError

    import db.models  # noqa: F401 (registers the ORM tables on Base.metadata)
    from db.base import Base
    from db.session import get_engine

    try:
        inspector = sa_inspect(get_engine())
        tables = set(inspector.get_table_names())
        dataset_columns = (
            {column["name"] for column in inspector.get_columns("datasets")}
            if "datasets" in tables
            else set()
        )
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc

    missing_tables = sorted(set(Base.metadata.tables) - tables)
    missing_columns = sorted(_AUDIT_COLUMNS - dataset_columns) if "datasets" in tables else []
    if missing_tables or missing_columns:
        logger.critical(
            "Database schema is behind the models: missing tables=%s missing dataset columns=%s. "
            "Run 'alembic upgrade head' and restart.",
            missing_tables,
            missing_columns,
        )
        raise RuntimeError(
            "Database schema is not migrated "
            f"(tables: {missing_tables or 'ok'}, dataset columns: {missing_columns or 'ok'})."
        )


def _prepare_storage() -> None:
    from app.config import get_storage_settings

    root = Path(get_storage_settings().root_dir)
    root.mkdir(parents=True, exist_ok=True)
    logger.info("Dataset storage root: %s", root.resolve())


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Refuse to serve until the database schema and storage root are usable."""
    _check_database()
    logger.info("Database schema validated")
    _prepare_storage()
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Dataset Quality Audit API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import quality_audit_router

    application.include_router(quality_audit_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
