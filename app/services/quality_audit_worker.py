"""
Worker entry point for queued quality audit tasks.

Runs Analyzer → Interpretation → Synthesis → Finalizer for one dataset and
always returns an outcome, so the transport can acknowledge every delivery.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import LLMSettings, get_llm_settings, get_storage_settings
from app.domain.quality_audit import (
    AuditTaskOutcome,
    AuditTaskPayload,
    DatasetContext,
    InvalidTaskPayloadError,
    OwnerContext,
    QualityAuditError,
    StaleTaskError,
    TeamContext,
)
from app.logging_utils import log_event
from app.services.interpretation_service import InterpretationService
from app.services.report_synthesis_service import ReportSynthesisService
from db.models.dataset import Dataset, QualityStatus
from db.repositories.dataset_repository import DatasetRepository
from db.repositories.storage import FileStorageBackend, LocalFileStorage
from llm_synthesis.adapter import BaseLLMAdapter, MockLLMAdapter, OpenAILLMAdapter
from quality.analyzer import StatisticalAnalyzer
from quality.finalizer import StatusFinalizer

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_dataset_context(dataset: Dataset) -> DatasetContext:
    """
    Collect dataset identity, column metadata and owner/team hints.
    """

    owner = None
    if dataset.owner is not None:
        owner = OwnerContext(
            name=dataset.owner.name,
            email=dataset.owner.email,
            ai_context=dataset.owner.ai_context,
        )

    team = None
    if dataset.team is not None:
        team = TeamContext(name=dataset.team.name, ai_context=dataset.team.ai_context)

    return DatasetContext(
        dataset_id=dataset.id,
        dataset_name=dataset.name,
        dataset_description=dataset.description or "",
        original_filename=dataset.original_filename,
        created_at=dataset.created_at,
        column_info=list(dataset.schema_info or []),
        column_descriptions=dict(dataset.column_descriptions or {}),
        owner=owner,
        team=team,
    )


class QualityAuditWorker:
    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        storage: FileStorageBackend,
        interpretation_service: InterpretationService,
        synthesis_service: ReportSynthesisService,
        analyzer: StatisticalAnalyzer | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._analyzer = analyzer or StatisticalAnalyzer(storage)
        self._interpretation_service = interpretation_service
        self._synthesis_service = synthesis_service
        self._clock = clock

    def handle_task(self, payload: Mapping[str, Any] | None) -> AuditTaskOutcome:
        """
        Process one delivered task. Never raises.
        """

        try:
            task = AuditTaskPayload.from_mapping(payload)
        except InvalidTaskPayloadError as exc:
            logger.error("Rejected quality audit task: %s", exc)
            return AuditTaskOutcome(outcome=AuditTaskOutcome.INVALID, error=str(exc))

        log_event(
            logger,
            logging.INFO,
            "quality_audit_started",
            dataset_id=str(task.dataset_id),
            user_id=str(task.user_id),
        )

        with self._session_factory() as db:
            try:
                status = self._run_pipeline(db, task)
            except StaleTaskError as exc:
                db.rollback()
                logger.warning("Skipping stale quality audit task dataset_id=%s: %s", task.dataset_id, exc)
                return AuditTaskOutcome(
                    outcome=AuditTaskOutcome.STALE,
                    dataset_id=task.dataset_id,
                    error=str(exc),
                )
            except QualityAuditError as exc:
                logger.error("Quality audit failed dataset_id=%s: %s", task.dataset_id, exc)
                return self._fail(db, task.dataset_id, str(exc))
            except Exception as exc:
                logger.exception("Unexpected quality audit failure dataset_id=%s", task.dataset_id)
                return self._fail(db, task.dataset_id, f"Unexpected error: {exc}")

        log_event(
            logger,
            logging.INFO,
            "quality_audit_completed",
            dataset_id=str(task.dataset_id),
            quality_status=status,
        )
        return AuditTaskOutcome(
            outcome=AuditTaskOutcome.COMPLETED,
            dataset_id=task.dataset_id,
            quality_status=status,
        )

    def _run_pipeline(self, db: Session, task: AuditTaskPayload) -> str:
        dataset = DatasetRepository(db).get(task.dataset_id, refresh=True)
        if dataset is None:
            raise StaleTaskError(f"Dataset not found: {task.dataset_id}")
        if dataset.quality_status != QualityStatus.PROCESSING:
            raise StaleTaskError(
                f"Dataset {task.dataset_id} is {dataset.quality_status!r}, not processing"
            )

        context = build_dataset_context(dataset)
        storage_path = dataset.storage_path
        # Release the read transaction before the long-running stages.
        db.commit()

        programmatic_report = self._analyzer.analyze(storage_path)
        interpretation = self._interpretation_service.interpret(context, programmatic_report)
        final_report = self._synthesis_service.synthesize(
            context,
            programmatic_report,
            interpretation.to_document(),
        )

        status = StatusFinalizer(db).finalize(
            task.dataset_id,
            final_report,
            completed_at=self._clock(),
        )
        if status is None:
            raise StaleTaskError(
                f"Dataset {task.dataset_id} left processing before the report was stored"
            )
        return status

    def _fail(self, db: Session, dataset_id: uuid.UUID, message: str) -> AuditTaskOutcome:
        try:
            db.rollback()
            recorded = DatasetRepository(db).mark_failed(
                dataset_id,
                error_message=message,
                failed_at=self._clock(),
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not record quality audit failure dataset_id=%s", dataset_id)
            recorded = False

        if not recorded:
            logger.warning(
                "Quality audit failure not recorded; dataset %s is no longer processing",
                dataset_id,
            )
        return AuditTaskOutcome(
            outcome=AuditTaskOutcome.FAILED,
            dataset_id=dataset_id,
            quality_status=QualityStatus.ERROR if recorded else None,
            error=message,
        )


def build_llm_adapter(settings: LLMSettings | None = None) -> BaseLLMAdapter:
    """
    Construct the configured model adapter. Mock needs no credentials.
    """

    resolved = settings or get_llm_settings()
    if resolved.adapter == "mock":
        return MockLLMAdapter()
    return OpenAILLMAdapter(
        model=resolved.model,
        api_key=resolved.api_key,
        base_url=resolved.base_url,
        timeout_seconds=resolved.timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_dataset_storage() -> LocalFileStorage:
    return LocalFileStorage(get_storage_settings().root_dir)


@lru_cache(maxsize=1)
def get_quality_audit_worker() -> QualityAuditWorker:
    """
    Process-wide worker wired from environment settings.
    """

    from db.session import get_session_factory

    adapter = build_llm_adapter()
    return QualityAuditWorker(
        session_factory=get_session_factory(),
        storage=get_dataset_storage(),
        interpretation_service=InterpretationService(adapter),
        synthesis_service=ReportSynthesisService(adapter),
    )
