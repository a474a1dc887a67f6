"""
Audit coordinator: authorizes, validates preconditions, claims the dataset via
its persisted status, and hands the audit to the task queue.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy.orm import Session

from app import failure_codes
from app.config import QualityAuditSettings, get_quality_audit_settings
from app.domain.quality_audit import (
    AuditConflictError,
    AuditForbiddenError,
    AuditInitiation,
    AuditPreconditionError,
    AuditStatusView,
    AuditTaskPayload,
    DatasetNotFoundError,
    NoAuditError,
    TaskEnqueueError,
)
from app.logging_utils import log_event
from app.services.task_queue import AuditTaskQueue
from db.models.dataset import Dataset, QualityStatus
from db.repositories.dataset_repository import DatasetRepository
from db.repositories.team_repository import TeamMembershipRepository

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _column_name(descriptor: object) -> str:
    if isinstance(descriptor, dict):
        return str(descriptor.get("name", ""))
    return str(descriptor)


def missing_column_descriptions(dataset: Dataset) -> list[str]:
    """
    Columns from schema_info without a non-blank description, in header order.
    """

    descriptions = dataset.column_descriptions or {}
    missing: list[str] = []
    for descriptor in dataset.schema_info or []:
        name = _column_name(descriptor)
        if not str(descriptions.get(name) or "").strip():
            missing.append(name)
    return missing


def _conflict_for_status(status: str) -> AuditConflictError:
    if status in QualityStatus.TERMINAL:
        return AuditConflictError(
            code=failure_codes.AUDIT_ALREADY_COMPLETE,
            message="Quality audit already completed. Reset the audit to run it again.",
        )
    return AuditConflictError(
        code=failure_codes.AUDIT_IN_PROGRESS,
        message="A quality audit is already in progress for this dataset.",
    )


class QualityAuditCoordinator:
    """
    Synchronous, caller-facing half of the audit flow.

    Every status change goes through a guarded UPDATE in DatasetRepository;
    the status read up front only selects the error to report.
    """

    def __init__(
        self,
        *,
        settings: QualityAuditSettings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._settings = settings or get_quality_audit_settings()
        self._clock = clock

    def initiate(
        self,
        *,
        db: Session,
        task_queue: AuditTaskQueue,
        dataset_id: uuid.UUID,
        requester_id: uuid.UUID,
    ) -> AuditInitiation:
        datasets = DatasetRepository(db)
        dataset = datasets.get(dataset_id)
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset not found: {dataset_id}")

        self._authorize_mutation(db, dataset, requester_id)
        self._check_preconditions(dataset)
        if dataset.quality_status != QualityStatus.NOT_RUN:
            raise _conflict_for_status(dataset.quality_status)

        requested_at = self._clock()
        if not datasets.claim_for_audit(dataset_id, requested_at=requested_at):
            db.rollback()
            current = datasets.get(dataset_id, refresh=True)
            if current is None:
                raise DatasetNotFoundError(f"Dataset not found: {dataset_id}")
            raise _conflict_for_status(current.quality_status)
        db.commit()

        payload = AuditTaskPayload(dataset_id=dataset_id, user_id=requester_id)
        try:
            task_id = task_queue.enqueue(
                self._settings.queue_name,
                self._settings.worker_path,
                payload.to_dict(),
            )
        except Exception as exc:
            logger.exception("Failed to enqueue quality audit dataset_id=%s", dataset_id)
            self._record_enqueue_failure(db, dataset_id, exc)
            raise TaskEnqueueError(f"Failed to enqueue quality audit task: {exc}") from exc

        log_event(
            logger,
            logging.INFO,
            "quality_audit_enqueued",
            dataset_id=str(dataset_id),
            requester_id=str(requester_id),
            task_id=task_id,
        )
        return AuditInitiation(
            dataset_id=dataset_id,
            status=QualityStatus.PROCESSING,
            task_id=task_id,
            requested_at=requested_at,
        )

    def reset(
        self,
        *,
        db: Session,
        dataset_id: uuid.UUID,
        requester_id: uuid.UUID,
    ) -> AuditStatusView:
        datasets = DatasetRepository(db)
        dataset = datasets.get(dataset_id)
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset not found: {dataset_id}")

        self._authorize_mutation(db, dataset, requester_id)
        if dataset.quality_status == QualityStatus.PROCESSING:
            raise AuditConflictError(
                code=failure_codes.AUDIT_IN_PROGRESS,
                message="Cannot reset a quality audit while it is in progress.",
            )

        if not datasets.reset_audit(dataset_id):
            db.rollback()
            raise AuditConflictError(
                code=failure_codes.AUDIT_IN_PROGRESS,
                message="Cannot reset a quality audit while it is in progress.",
            )
        db.commit()

        logger.info("Reset quality audit dataset_id=%s requester_id=%s", dataset_id, requester_id)
        return AuditStatusView(
            dataset_id=dataset_id,
            quality_status=QualityStatus.NOT_RUN,
            requested_at=None,
            completed_at=None,
        )

    def get_status(
        self,
        *,
        db: Session,
        dataset_id: uuid.UUID,
        requester_id: uuid.UUID,
    ) -> AuditStatusView:
        dataset = self._load_readable(db, dataset_id, requester_id)
        return AuditStatusView(
            dataset_id=dataset.id,
            quality_status=dataset.quality_status,
            requested_at=dataset.quality_audit_requested_at,
            completed_at=dataset.quality_audit_completed_at,
        )

    def get_report(
        self,
        *,
        db: Session,
        dataset_id: uuid.UUID,
        requester_id: uuid.UUID,
    ) -> AuditStatusView:
        """
        Status, timestamps and report. The report is only exposed once the
        status is terminal.
        """

        dataset = self._load_readable(db, dataset_id, requester_id)
        if dataset.quality_status == QualityStatus.NOT_RUN:
            raise NoAuditError("No quality audit has been run for this dataset.")

        terminal = dataset.quality_status in QualityStatus.TERMINAL
        return AuditStatusView(
            dataset_id=dataset.id,
            quality_status=dataset.quality_status,
            requested_at=dataset.quality_audit_requested_at,
            completed_at=dataset.quality_audit_completed_at,
            report=dataset.quality_report if terminal else None,
        )

    def _load_readable(
        self,
        db: Session,
        dataset_id: uuid.UUID,
        requester_id: uuid.UUID,
    ) -> Dataset:
        dataset = DatasetRepository(db).get(dataset_id, refresh=True)
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset not found: {dataset_id}")
        if dataset.owner_id == requester_id:
            return dataset
        if dataset.team_id is not None and TeamMembershipRepository(db).is_team_member(
            user_id=requester_id,
            team_id=dataset.team_id,
        ):
            return dataset
        raise DatasetNotFoundError(f"Dataset not found or not accessible: {dataset_id}")

    @staticmethod
    def _authorize_mutation(db: Session, dataset: Dataset, requester_id: uuid.UUID) -> None:
        if dataset.owner_id == requester_id:
            return
        if dataset.team_id is not None and TeamMembershipRepository(db).is_team_admin(
            user_id=requester_id,
            team_id=dataset.team_id,
        ):
            return
        raise AuditForbiddenError(
            "Only the dataset owner or a team admin can manage its quality audit."
        )

    @staticmethod
    def _check_preconditions(dataset: Dataset) -> None:
        if not (dataset.description or "").strip():
            raise AuditPreconditionError(
                code=failure_codes.MISSING_CONTEXT,
                message="Dataset description is required before running a quality audit.",
            )

        missing = missing_column_descriptions(dataset)
        if missing:
            raise AuditPreconditionError(
                code=failure_codes.MISSING_COLUMN_DESCRIPTIONS,
                message=(
                    "All columns must have descriptions before running a quality audit. "
                    f"Missing: {', '.join(missing)}"
                ),
                missing_columns=missing,
            )

    def _record_enqueue_failure(self, db: Session, dataset_id: uuid.UUID, exc: Exception) -> None:
        db.rollback()
        DatasetRepository(db).mark_failed(
            dataset_id,
            error_message=f"Failed to enqueue quality audit task: {exc}",
            failed_at=self._clock(),
        )
        db.commit()


@lru_cache(maxsize=1)
def get_quality_audit_coordinator() -> QualityAuditCoordinator:
    return QualityAuditCoordinator()
