"""
app/api/dependencies.py

Shared FastAPI dependencies for request identity and task dispatch.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from fastapi import BackgroundTasks, Depends, Header, HTTPException, status

from app.config import get_quality_audit_settings, get_task_queue_settings
from app.services.quality_audit_worker import QualityAuditWorker, get_quality_audit_worker
from app.services.task_queue import (
    AuditTaskQueue,
    BackgroundTaskQueue,
    FastAPIBackgroundTaskExecutor,
    HTTPTaskQueue,
)

WorkerFactory = Callable[[], QualityAuditWorker]


def get_requester_id(x_user_id: str | None = Header(default=None)) -> UUID:
    """
    Resolve the authenticated user id forwarded by the auth layer.
    """

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header.",
        )
    try:
        return UUID(x_user_id.strip())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header must be a UUID.",
        ) from exc


def get_task_queue(
    background_tasks: BackgroundTasks,
    worker: QualityAuditWorker = Depends(get_quality_audit_worker),
) -> AuditTaskQueue:
    """
    Build the configured task queue for this request.
    """

    settings = get_task_queue_settings()
    if settings.backend == "http":
        return HTTPTaskQueue(
            settings.service_url or "",
            timeout_seconds=settings.timeout_seconds,
        )
    return BackgroundTaskQueue(
        FastAPIBackgroundTaskExecutor(background_tasks),
        {get_quality_audit_settings().worker_path: worker.handle_task},
    )


def get_worker_factory() -> WorkerFactory:
    """
    Return the worker builder. The worker endpoint builds the worker itself.
    """

    return get_quality_audit_worker
