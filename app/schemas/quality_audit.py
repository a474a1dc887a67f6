"""
Schemas for the dataset quality audit endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.quality_audit import AuditInitiation, AuditStatusView


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class QualityAuditAcceptedResponse(_CamelModel):
    dataset_id: UUID = Field(alias="datasetId")
    status: str
    task_id: str = Field(alias="taskId")
    requested_at: datetime = Field(alias="requestedAt")

    @classmethod
    def from_initiation(cls, initiation: AuditInitiation) -> "QualityAuditAcceptedResponse":
        return cls(
            dataset_id=initiation.dataset_id,
            status=initiation.status,
            task_id=initiation.task_id,
            requested_at=initiation.requested_at,
        )


class QualityAuditStatusResponse(_CamelModel):
    dataset_id: UUID = Field(alias="datasetId")
    quality_status: str = Field(alias="qualityStatus")
    requested_at: datetime | None = Field(default=None, alias="requestedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @classmethod
    def from_view(cls, view: AuditStatusView) -> "QualityAuditStatusResponse":
        return cls(
            dataset_id=view.dataset_id,
            quality_status=view.quality_status,
            requested_at=view.requested_at,
            completed_at=view.completed_at,
        )


class QualityAuditReportResponse(QualityAuditStatusResponse):
    report: dict[str, Any] | None = None

    @classmethod
    def from_view(cls, view: AuditStatusView) -> "QualityAuditReportResponse":
        return cls(
            dataset_id=view.dataset_id,
            quality_status=view.quality_status,
            requested_at=view.requested_at,
            completed_at=view.completed_at,
            report=view.report,
        )


class WorkerAcknowledgement(BaseModel):
    acknowledged: bool = True
