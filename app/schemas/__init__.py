"""
app/schemas package marker.
"""

from app.schemas.quality_audit import (
    QualityAuditAcceptedResponse,
    QualityAuditReportResponse,
    QualityAuditStatusResponse,
    WorkerAcknowledgement,
)

__all__ = [
    "QualityAuditAcceptedResponse",
    "QualityAuditReportResponse",
    "QualityAuditStatusResponse",
    "WorkerAcknowledgement",
]
