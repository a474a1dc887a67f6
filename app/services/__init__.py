"""
app/services package marker.
"""

from app.services.interpretation_service import InterpretationService
from app.services.quality_audit_coordinator import (
    QualityAuditCoordinator,
    get_quality_audit_coordinator,
)
from app.services.quality_audit_worker import (
    QualityAuditWorker,
    build_llm_adapter,
    get_dataset_storage,
    get_quality_audit_worker,
)
from app.services.report_synthesis_service import ReportSynthesisService
from app.services.task_queue import (
    BackgroundTaskQueue,
    FastAPIBackgroundTaskExecutor,
    HTTPTaskQueue,
    TaskQueueError,
)

__all__ = [
    "InterpretationService",
    "QualityAuditCoordinator",
    "get_quality_audit_coordinator",
    "QualityAuditWorker",
    "build_llm_adapter",
    "get_dataset_storage",
    "get_quality_audit_worker",
    "ReportSynthesisService",
    "BackgroundTaskQueue",
    "FastAPIBackgroundTaskExecutor",
    "HTTPTaskQueue",
    "TaskQueueError",
]
