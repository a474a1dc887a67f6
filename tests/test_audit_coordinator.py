"""
tests/test_audit_coordinator.py

Authorization, preconditions, the guarded claim and enqueue compensation for
QualityAuditCoordinator, against a SQLite database.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import pytest

from app import failure_codes
from app.config import QualityAuditSettings
from app.domain.quality_audit import (
    AuditConflictError,
    AuditForbiddenError,
    AuditPreconditionError,
    DatasetNotFoundError,
    NoAuditError,
    TaskEnqueueError,
)
from app.services.quality_audit_coordinator import QualityAuditCoordinator
from app.services.task_queue import TaskQueueError
from db.models import Dataset, QualityStatus, TeamRole
from db.repositories.dataset_repository import DatasetRepository

REQUESTED_AT = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)
SETTINGS = QualityAuditSettings(queue_name="audits", worker_path="/internal/quality-audit-worker")


class _RecordingQueue:
    def __init__(self) -> None:
        self.tasks: list[tuple[str, str, dict[str, Any]]] = []

    def enqueue(self, queue_name: str, target_path: str, payload) -> str:
        self.tasks.append((queue_name, target_path, dict(payload)))
        return f"{queue_name}-{len(self.tasks)}"


class _FailingQueue:
    def enqueue(self, queue_name: str, target_path: str, payload) -> str:
        raise TaskQueueError("queue unavailable")


@pytest.fixture()
def coordinator() -> QualityAuditCoordinator:
    return QualityAuditCoordinator(settings=SETTINGS, clock=lambda: REQUESTED_AT)


@pytest.fixture()
def queue() -> _RecordingQueue:
    return _RecordingQueue()


def _reload(db, dataset_id: uuid.UUID) -> Dataset:
    return DatasetRepository(db).get(dataset_id, refresh=True)


# ---------------------------------------------------------------------------
# initiate
# ---------------------------------------------------------------------------


class TestInitiate:
    def test_owner_starts_audit(self, db, coordinator, queue, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner)

        initiation = coordinator.initiate(
            db=db, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id
        )

        assert initiation.status == QualityStatus.PROCESSING
        assert initiation.task_id == "audits-1"
        assert initiation.requested_at == REQUESTED_AT
        assert queue.tasks == [
            (
                "audits",
                "/internal/quality-audit-worker",
                {"datasetId": str(dataset.id), "userId": str(owner.id)},
            )
        ]
        stored = _reload(db, dataset.id)
        assert stored.quality_status == QualityStatus.PROCESSING
        assert stored.quality_audit_requested_at is not None
        assert stored.quality_report is None

    def test_unknown_dataset(self, db, coordinator, queue) -> None:
        with pytest.raises(DatasetNotFoundError):
            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=uuid.uuid4(), requester_id=uuid.uuid4()
            )
        assert queue.tasks == []

    def test_stranger_is_forbidden(self, db, coordinator, queue, make_user, make_dataset) -> None:
        dataset = make_dataset(owner=make_user())
        stranger = make_user()

        with pytest.raises(AuditForbiddenError):
            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=dataset.id, requester_id=stranger.id
            )
        assert _reload(db, dataset.id).quality_status == QualityStatus.NOT_RUN

    def test_team_admin_may_start(
        self, db, coordinator, queue, make_user, make_team, make_dataset
    ) -> None:
        admin = make_user()
        team = make_team(members={admin.id: TeamRole.ADMIN})
        dataset = make_dataset(owner=make_user(), team=team)

        coordinator.initiate(db=db, task_queue=queue, dataset_id=dataset.id, requester_id=admin.id)

        assert queue.tasks[0][2]["userId"] == str(admin.id)

    def test_team_member_may_not_start(
        self, db, coordinator, queue, make_user, make_team, make_dataset
    ) -> None:
        member = make_user()
        team = make_team(members={member.id: TeamRole.MEMBER})
        dataset = make_dataset(owner=make_user(), team=team)

        with pytest.raises(AuditForbiddenError):
            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=dataset.id, requester_id=member.id
            )

    @pytest.mark.parametrize("description", [None, "", "   "])
    def test_description_is_required(
        self, db, coordinator, queue, make_user, make_dataset, description
    ) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner, description=description)

        with pytest.raises(AuditPreconditionError) as exc_info:
            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id
            )

        assert exc_info.value.code == failure_codes.MISSING_CONTEXT
        assert _reload(db, dataset.id).quality_status == QualityStatus.NOT_RUN

    def test_every_column_needs_a_description(
        self, db, coordinator, queue, make_user, make_dataset
    ) -> None:
        owner = make_user()
        dataset = make_dataset(
            owner=owner,
            column_descriptions={"region": "Sales region", "revenue": "  "},
        )

        with pytest.raises(AuditPreconditionError) as exc_info:
            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id
            )

        assert exc_info.value.code == failure_codes.MISSING_COLUMN_DESCRIPTIONS
        assert exc_info.value.missing_columns == ("revenue", "notes")
        assert queue.tasks == []

    def test_running_audit_conflicts(self, db, coordinator, queue, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner, quality_status=QualityStatus.PROCESSING)

        with pytest.raises(AuditConflictError) as exc_info:
            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id
            )
        assert exc_info.value.code == failure_codes.AUDIT_IN_PROGRESS

    @pytest.mark.parametrize("status", [QualityStatus.OK, QualityStatus.WARNING, QualityStatus.ERROR])
    def test_completed_audit_conflicts(
        self, db, coordinator, queue, make_user, make_dataset, status
    ) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner, quality_status=status)

        with pytest.raises(AuditConflictError) as exc_info:
            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id
            )
        assert exc_info.value.code == failure_codes.AUDIT_ALREADY_COMPLETE

    def test_concurrent_initiations_only_one_wins(
        self, db, session_factory, coordinator, queue, make_user, make_dataset
    ) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner)

        with session_factory() as other:
            # Loaded before the first claim, so its cached status is still not_run.
            assert other.get(Dataset, dataset.id).quality_status == QualityStatus.NOT_RUN

            coordinator.initiate(
                db=db, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id
            )
            with pytest.raises(AuditConflictError) as exc_info:
                coordinator.initiate(
                    db=other, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id
                )

        assert exc_info.value.code == failure_codes.AUDIT_IN_PROGRESS
        assert len(queue.tasks) == 1

    def test_enqueue_failure_records_error(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner)

        with pytest.raises(TaskEnqueueError) as exc_info:
            coordinator.initiate(
                db=db, task_queue=_FailingQueue(), dataset_id=dataset.id, requester_id=owner.id
            )

        assert exc_info.value.code == failure_codes.TASK_ENQUEUE_FAILED
        stored = _reload(db, dataset.id)
        assert stored.quality_status == QualityStatus.ERROR
        assert "queue unavailable" in stored.quality_report["error"]
        assert stored.quality_report["timestamp"] == REQUESTED_AT.isoformat()
        assert stored.quality_audit_completed_at is not None


# ---------------------------------------------------------------------------
# reset
# ---------------------------------------------------------------------------


class TestReset:
    def test_reset_clears_audit_fields(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(
            owner=owner,
            quality_status=QualityStatus.WARNING,
            quality_audit_requested_at=REQUESTED_AT,
            quality_audit_completed_at=REQUESTED_AT,
            quality_report={"qualityScore": 60},
        )

        view = coordinator.reset(db=db, dataset_id=dataset.id, requester_id=owner.id)

        assert view.quality_status == QualityStatus.NOT_RUN
        stored = _reload(db, dataset.id)
        assert stored.quality_status == QualityStatus.NOT_RUN
        assert stored.quality_audit_requested_at is None
        assert stored.quality_audit_completed_at is None
        assert stored.quality_report is None

    def test_reset_then_initiate(self, db, coordinator, queue, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner, quality_status=QualityStatus.OK)

        coordinator.reset(db=db, dataset_id=dataset.id, requester_id=owner.id)
        coordinator.initiate(db=db, task_queue=queue, dataset_id=dataset.id, requester_id=owner.id)

        assert _reload(db, dataset.id).quality_status == QualityStatus.PROCESSING

    def test_reset_never_run_is_a_no_op(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner)

        view = coordinator.reset(db=db, dataset_id=dataset.id, requester_id=owner.id)

        assert view.quality_status == QualityStatus.NOT_RUN

    def test_reset_while_processing_conflicts(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner, quality_status=QualityStatus.PROCESSING)

        with pytest.raises(AuditConflictError) as exc_info:
            coordinator.reset(db=db, dataset_id=dataset.id, requester_id=owner.id)

        assert exc_info.value.code == failure_codes.AUDIT_IN_PROGRESS
        assert _reload(db, dataset.id).quality_status == QualityStatus.PROCESSING

    def test_reset_requires_owner_or_admin(self, db, coordinator, make_user, make_dataset) -> None:
        dataset = make_dataset(owner=make_user(), quality_status=QualityStatus.OK)

        with pytest.raises(AuditForbiddenError):
            coordinator.reset(db=db, dataset_id=dataset.id, requester_id=make_user().id)


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------


class TestReads:
    def test_status_for_owner(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner)

        view = coordinator.get_status(db=db, dataset_id=dataset.id, requester_id=owner.id)

        assert view.quality_status == QualityStatus.NOT_RUN
        assert view.requested_at is None
        assert view.report is None

    def test_team_member_can_read(
        self, db, coordinator, make_user, make_team, make_dataset
    ) -> None:
        member = make_user()
        team = make_team(members={member.id: TeamRole.MEMBER})
        dataset = make_dataset(owner=make_user(), team=team, quality_status=QualityStatus.OK)

        view = coordinator.get_status(db=db, dataset_id=dataset.id, requester_id=member.id)

        assert view.quality_status == QualityStatus.OK

    def test_stranger_cannot_see_dataset(self, db, coordinator, make_user, make_dataset) -> None:
        dataset = make_dataset(owner=make_user())

        with pytest.raises(DatasetNotFoundError):
            coordinator.get_status(db=db, dataset_id=dataset.id, requester_id=make_user().id)

    def test_report_before_any_audit(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(owner=owner)

        with pytest.raises(NoAuditError):
            coordinator.get_report(db=db, dataset_id=dataset.id, requester_id=owner.id)

    def test_report_hidden_while_processing(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(
            owner=owner,
            quality_status=QualityStatus.PROCESSING,
            quality_report={"partial": True},
        )

        view = coordinator.get_report(db=db, dataset_id=dataset.id, requester_id=owner.id)

        assert view.quality_status == QualityStatus.PROCESSING
        assert view.report is None

    def test_report_after_completion(self, db, coordinator, make_user, make_dataset) -> None:
        owner = make_user()
        dataset = make_dataset(
            owner=owner,
            quality_status=QualityStatus.OK,
            quality_audit_completed_at=REQUESTED_AT,
            quality_report={"qualityScore": 88},
        )

        view = coordinator.get_report(db=db, dataset_id=dataset.id, requester_id=owner.id)

        assert view.report == {"qualityScore": 88}
        assert view.completed_at is not None
