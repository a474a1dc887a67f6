"""
app/domain package marker.
"""

from app.domain.quality_audit import (
    AuditInitiation,
    AuditStatusView,
    AuditTaskOutcome,
    AuditTaskPayload,
    DatasetContext,
    QualityAuditError,
)

__all__ = [
    "AuditInitiation",
    "AuditStatusView",
    "AuditTaskOutcome",
    "AuditTaskPayload",
    "DatasetContext",
    "QualityAuditError",
]
