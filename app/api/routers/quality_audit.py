"""
Dataset quality audit endpoints and the internal worker endpoint.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from app.api.dependencies import (
    WorkerFactory,
    get_requester_id,
    get_task_queue,
    get_worker_factory,
)
from app.domain.quality_audit import (
    AuditConflictError,
    AuditForbiddenError,
    AuditPreconditionError,
    DatasetNotFoundError,
    NoAuditError,
    TaskEnqueueError,
)
from app.schemas.quality_audit import (
    QualityAuditAcceptedResponse,
    QualityAuditReportResponse,
    QualityAuditStatusResponse,
    WorkerAcknowledgement,
)
from app.services.quality_audit_coordinator import (
    QualityAuditCoordinator,
    get_quality_audit_coordinator,
)
from app.services.task_queue import AuditTaskQueue
from db.models.dataset import QualityStatus
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["quality-audit"])


def _error_detail(code: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"code": code, "message": message, **extra}


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, DatasetNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, NoAuditError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_detail(exc.code, str(exc)),
        ) from exc
    if isinstance(exc, AuditForbiddenError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, AuditPreconditionError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_detail(exc.code, str(exc), missingColumns=list(exc.missing_columns)),
        ) from exc
    if isinstance(exc, AuditConflictError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error_detail(exc.code, str(exc)),
        ) from exc
    if isinstance(exc, TaskEnqueueError):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=_error_detail(exc.code, str(exc)),
        ) from exc
    raise exc


_COORDINATOR_ERRORS = (
    DatasetNotFoundError,
    NoAuditError,
    AuditForbiddenError,
    AuditPreconditionError,
    AuditConflictError,
    TaskEnqueueError,
)


@router.post(
    "/datasets/{dataset_id}/quality-audit",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=QualityAuditAcceptedResponse,
)
def initiate_quality_audit(
    dataset_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    db: Session = Depends(get_db),
    task_queue: AuditTaskQueue = Depends(get_task_queue),
    coordinator: QualityAuditCoordinator = Depends(get_quality_audit_coordinator),
) -> QualityAuditAcceptedResponse:
    try:
        initiation = coordinator.initiate(
            db=db,
            task_queue=task_queue,
            dataset_id=dataset_id,
            requester_id=requester_id,
        )
    except _COORDINATOR_ERRORS as exc:
        _raise_http(exc)
    return QualityAuditAcceptedResponse.from_initiation(initiation)


@router.get(
    "/datasets/{dataset_id}/quality-audit/status",
    response_model=QualityAuditStatusResponse,
)
def get_quality_audit_status(
    dataset_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    db: Session = Depends(get_db),
    coordinator: QualityAuditCoordinator = Depends(get_quality_audit_coordinator),
) -> QualityAuditStatusResponse:
    try:
        view = coordinator.get_status(db=db, dataset_id=dataset_id, requester_id=requester_id)
    except _COORDINATOR_ERRORS as exc:
        _raise_http(exc)
    return QualityAuditStatusResponse.from_view(view)


@router.get(
    "/datasets/{dataset_id}/quality-audit",
    response_model=QualityAuditReportResponse,
)
def get_quality_audit_report(
    dataset_id: UUID,
    response: Response,
    requester_id: UUID = Depends(get_requester_id),
    db: Session = Depends(get_db),
    coordinator: QualityAuditCoordinator = Depends(get_quality_audit_coordinator),
) -> QualityAuditReportResponse:
    try:
        view = coordinator.get_report(db=db, dataset_id=dataset_id, requester_id=requester_id)
    except _COORDINATOR_ERRORS as exc:
        _raise_http(exc)

    if view.quality_status == QualityStatus.PROCESSING:
        response.status_code = status.HTTP_202_ACCEPTED
    return QualityAuditReportResponse.from_view(view)


@router.delete(
    "/datasets/{dataset_id}/quality-audit",
    response_model=QualityAuditStatusResponse,
)
def reset_quality_audit(
    dataset_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    db: Session = Depends(get_db),
    coordinator: QualityAuditCoordinator = Depends(get_quality_audit_coordinator),
) -> QualityAuditStatusResponse:
    try:
        view = coordinator.reset(db=db, dataset_id=dataset_id, requester_id=requester_id)
    except _COORDINATOR_ERRORS as exc:
        _raise_http(exc)
    return QualityAuditStatusResponse.from_view(view)


@router.post(
    "/internal/quality-audit-worker",
    response_model=WorkerAcknowledgement,
)
async def receive_quality_audit_task(
    request: Request,
    background_tasks: BackgroundTasks,
    build_worker: WorkerFactory = Depends(get_worker_factory),
) -> WorkerAcknowledgement:
    """
    Always acknowledges; the pipeline runs after the response is sent.
    """

    body = await request.body()
    try:
        payload = json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Quality audit task body is not valid JSON")
        payload = None

    try:
        worker = build_worker()
    except Exception:
        logger.exception("Quality audit worker unavailable, task not run: payload=%s", payload)
        return WorkerAcknowledgement()

    background_tasks.add_task(worker.handle_task, payload)
    return WorkerAcknowledgement()
