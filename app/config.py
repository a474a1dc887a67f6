"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

LLM_ADAPTERS = frozenset({"openai", "mock"})
TASK_QUEUE_BACKENDS = frozenset({"background", "http"})
DATABASE_DIALECTS = frozenset({"postgresql", "sqlite"})

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})


def load_env_files(root: Path = _PROJECT_ROOT) -> None:
    """
    Copy `.env` then `.env.local` entries into the process environment.

    Existing variables are never overridden, so the first file to define a key
    wins over the second.
    """

    for env_path in (root / ".env", root / ".env.local"):
        if not env_path.is_file():
            continue
        for line in env_path.read_text(encoding="utf-8").splitlines():
            key, sep, value = line.strip().partition("=")
            key = key.strip()
            if not sep or not key or key.startswith("#"):
                continue
            os.environ.setdefault(key, value.strip().strip("'\""))


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()

def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class QualityAuditSettings:
    """
    Runtime settings for the quality audit pipeline.
    """

    queue_name: str = "quality-audit"
    worker_path: str = "/internal/quality-audit-worker"
    report_source: str = "Dataset Quality Audit"
    report_version: str = "1.0"
    max_interpreted_columns: int = 5


@dataclass(frozen=True)
class LLMSettings:
    """
    Model provider settings shared by the interpretation and synthesis stages.
    """

    adapter: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    timeout_seconds: float = 60.0
    max_retries: int = 2
    backoff_initial_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    temperature: float = 0.2
    column_max_tokens: int = 1000
    overall_max_tokens: int = 1500
    synthesis_max_tokens: int = 8000


@dataclass(frozen=True)
class TaskQueueSettings:
    """
    Task queue transport settings.
    """

    backend: str = "background"
    service_url: str | None = None
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class StorageSettings:
    """
    Dataset file storage settings.
    """

    root_dir: str = "data/datasets"


@lru_cache(maxsize=1)
def get_quality_audit_settings() -> QualityAuditSettings:
    """
    Return cached quality audit settings from environment variables.
    """

    return QualityAuditSettings(
        queue_name=_get_str_env("QUALITY_AUDIT_QUEUE_NAME", "quality-audit"),
        worker_path=_get_str_env("QUALITY_AUDIT_WORKER_PATH", "/internal/quality-audit-worker"),
        report_source=_get_str_env("QUALITY_AUDIT_REPORT_SOURCE", "Dataset Quality Audit"),
        report_version=_get_str_env("QUALITY_AUDIT_REPORT_VERSION", "1.0"),
        max_interpreted_columns=max(0, _get_int_env("QUALITY_AUDIT_MAX_INTERPRETED_COLUMNS", 5)),
    )


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """
    Return cached LLM provider settings from environment variables.
    """

    return LLMSettings(
        adapter=_get_str_env("LLM_ADAPTER", "openai").lower(),
        model=_get_str_env("LLM_MODEL", "gpt-4o-mini"),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
        timeout_seconds=max(1.0, _get_float_env("LLM_TIMEOUT_SECONDS", 60.0)),
        max_retries=max(0, _get_int_env("LLM_MAX_RETRIES", 2)),
        backoff_initial_seconds=max(0.0, _get_float_env("LLM_BACKOFF_INITIAL_SECONDS", 1.0)),
        backoff_multiplier=max(1.0, _get_float_env("LLM_BACKOFF_MULTIPLIER", 2.0)),
        temperature=min(2.0, max(0.0, _get_float_env("LLM_TEMPERATURE", 0.2))),
        column_max_tokens=max(1, _get_int_env("LLM_COLUMN_MAX_TOKENS", 1000)),
        overall_max_tokens=max(1, _get_int_env("LLM_OVERALL_MAX_TOKENS", 1500)),
        synthesis_max_tokens=max(1, _get_int_env("LLM_SYNTHESIS_MAX_TOKENS", 8000)),
    )


@lru_cache(maxsize=1)
def get_task_queue_settings() -> TaskQueueSettings:
    """
    Return cached task queue settings from environment variables.
    """

    return TaskQueueSettings(
        backend=_get_str_env("TASK_QUEUE_BACKEND", "background").lower(),
        service_url=_get_optional_str_env("SERVICE_URL"),
        timeout_seconds=max(1.0, _get_float_env("TASK_QUEUE_TIMEOUT_SECONDS", 10.0)),
    )


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """
    Return cached dataset storage settings from environment variables.
    """

    return StorageSettings(
        root_dir=_get_str_env("DATASET_STORAGE_ROOT", "data/datasets"),
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """
    Dataset store connection settings.

    PostgreSQL in deployments; SQLite for local runs and tests. Pool sizing
    only applies to PostgreSQL.
    """

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 1800

    @property
    def dialect(self) -> str:
        return self.url.split(":", 1)[0].split("+", 1)[0]


def to_sqlalchemy_url(url: str) -> str:
    """
    Pin PostgreSQL URLs to the psycopg driver and reject unsupported dialects.

    Raises:
        ValueError: The URL names a database other than PostgreSQL or SQLite.
    """

    url = url.strip()
    for bare_scheme in ("postgres://", "postgresql://"):
        if url.startswith(bare_scheme):
            url = "postgresql+psycopg://" + url[len(bare_scheme):]
            break

    dialect = url.split(":", 1)[0].split("+", 1)[0]
    if dialect not in DATABASE_DIALECTS:
        raise ValueError(
            f"Unsupported database '{dialect or url}'. "
            f"Allowed: {sorted(DATABASE_DIALECTS)}."
        )
    return url


def database_url_from_env() -> str | None:
    """
    Pick the configured database URL, or None when nothing is set.

    Priority: DATABASE_URL, then CLOUD_DATABASE_URL when ENVIRONMENT is a
    cloud environment, then LOCAL_DATABASE_URL.
    """

    direct_url = _get_optional_str_env("DATABASE_URL")
    if direct_url:
        return direct_url

    environment = _get_str_env("ENVIRONMENT", "local").lower()
    cloud_url = _get_optional_str_env("CLOUD_DATABASE_URL")
    if environment in _CLOUD_ENVIRONMENTS and cloud_url:
        return cloud_url

    return _get_optional_str_env("LOCAL_DATABASE_URL")


def database_settings_for(url: str) -> DatabaseSettings:
    """
    Settings for an explicit URL, with pool and echo options from the environment.
    """

    return DatabaseSettings(
        url=to_sqlalchemy_url(url),
        echo=_get_bool_env("SQL_ECHO", False),
        pool_size=max(1, _get_int_env("DB_POOL_SIZE", 5)),
        max_overflow=max(0, _get_int_env("DB_MAX_OVERFLOW", 10)),
        pool_recycle_seconds=_get_int_env("DB_POOL_RECYCLE", 1800),
    )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    """
    Return cached database settings from environment variables.

    Raises:
        RuntimeError: No database URL is configured.
    """

    url = database_url_from_env()
    if url is None:
        raise RuntimeError(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL "
            "or LOCAL_DATABASE_URL."
        )
    return database_settings_for(url)
