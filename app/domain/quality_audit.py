"""
app/domain/quality_audit.py

Domain types and exception taxonomy for the dataset quality audit flow.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from app import failure_codes


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class QualityAuditError(Exception):
    """
    Base class for every quality audit failure.
    """


class DatasetNotFoundError(QualityAuditError):
    """
    Raised when the dataset does not exist or is not visible to the requester.
    """


class AuditForbiddenError(QualityAuditError):
    """
    Raised when the requester may not start or reset an audit on the dataset.
    """


class AuditPreconditionError(QualityAuditError):
    """
    Raised when the dataset lacks the context an audit needs.
    """

    def __init__(self, *, code: str, message: str, missing_columns: list[str] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.missing_columns = tuple(missing_columns or ())


class AuditConflictError(QualityAuditError):
    """
    Raised when the dataset's audit state does not allow the requested change.
    """

    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class NoAuditError(QualityAuditError):
    """
    Raised when a report is requested for a dataset that was never audited.
    """

    code = failure_codes.NO_AUDIT


class TaskEnqueueError(QualityAuditError):
    """
    Raised when the audit task could not be handed to the task queue.
    """

    code = failure_codes.TASK_ENQUEUE_FAILED


class SourceUnavailableError(QualityAuditError):
    """
    Raised when the dataset file cannot be opened or streamed as a table.
    """


class RemoteCallFailure(QualityAuditError):
    """
    Raised when an AI stage cannot get a response from the model provider.
    """

    def __init__(self, *, stage: str, message: str) -> None:
        super().__init__(f"{stage} call failed: {message}")
        self.stage = stage


class MalformedResponseError(QualityAuditError):
    """
    Raised when synthesis output cannot be parsed into a report.

    Recovered locally by the synthesis stage; never fails the pipeline.
    """

    def __init__(self, *, message: str, raw_response: str) -> None:
        super().__init__(message)
        self.raw_response = raw_response


class StaleTaskError(QualityAuditError):
    """
    Raised when a worker receives a task for a dataset no longer processing.
    """


class InvalidTaskPayloadError(QualityAuditError):
    """
    Raised when a worker task body is missing or has malformed fields.
    """


# ---------------------------------------------------------------------------
# Task payload
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditTaskPayload:
    """
    Body of one queued audit task.
    """

    dataset_id: uuid.UUID
    user_id: uuid.UUID

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "AuditTaskPayload":
        if not isinstance(payload, Mapping):
            raise InvalidTaskPayloadError("Invalid payload: expected a JSON object")

        raw_dataset_id = payload.get("datasetId")
        raw_user_id = payload.get("userId")
        if not raw_dataset_id or not raw_user_id:
            raise InvalidTaskPayloadError("Invalid payload: missing datasetId or userId")

        try:
            return cls(
                dataset_id=uuid.UUID(str(raw_dataset_id)),
                user_id=uuid.UUID(str(raw_user_id)),
            )
        except ValueError as exc:
            raise InvalidTaskPayloadError(
                f"Invalid payload: datasetId and userId must be UUIDs ({exc})"
            ) from exc

    def to_dict(self) -> dict[str, str]:
        return {"datasetId": str(self.dataset_id), "userId": str(self.user_id)}


# ---------------------------------------------------------------------------
# Dataset context handed to the AI stages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OwnerContext:
    name: str | None
    email: str
    ai_context: str = ""


@dataclass(frozen=True)
class TeamContext:
    name: str
    ai_context: str = ""


@dataclass(frozen=True)
class DatasetContext:
    """
    Everything the AI stages know about the dataset beyond its statistics.
    """

    dataset_id: uuid.UUID
    dataset_name: str
    dataset_description: str
    original_filename: str | None
    created_at: datetime | None
    column_info: list[dict[str, Any]] = field(default_factory=list)
    column_descriptions: dict[str, str] = field(default_factory=dict)
    owner: OwnerContext | None = None
    team: TeamContext | None = None

    def describe_column(self, column_name: str) -> str:
        return self.column_descriptions.get(column_name) or "No description provided"

    def user_hints(self) -> list[str]:
        hints: list[str] = []
        if self.owner is not None and self.owner.ai_context.strip():
            hints.append(f"Owner context: {self.owner.ai_context.strip()}")
        if self.team is not None and self.team.ai_context.strip():
            hints.append(f"Team context ({self.team.name}): {self.team.ai_context.strip()}")
        return hints


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditInitiation:
    """
    Outcome of a successful initiate call.
    """

    dataset_id: uuid.UUID
    status: str
    task_id: str
    requested_at: datetime


@dataclass(frozen=True)
class AuditStatusView:
    """
    Snapshot of a dataset's audit fields as read by clients.
    """

    dataset_id: uuid.UUID
    quality_status: str
    requested_at: datetime | None
    completed_at: datetime | None
    report: dict[str, Any] | None = None


@dataclass(frozen=True)
class AuditTaskOutcome:
    """
    What the worker did with one delivered task. Always returned, never raised,
    so the transport can acknowledge unconditionally.
    """

    outcome: str
    dataset_id: uuid.UUID | None = None
    quality_status: str | None = None
    error: str | None = None

    COMPLETED = "completed"
    FAILED = "failed"
    STALE = "stale"
    INVALID = "invalid"
