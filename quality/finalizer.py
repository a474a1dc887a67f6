"""
quality/finalizer.py

Maps a synthesized report to a coarse quality status and persists both in one
guarded write.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.orm import Session

from db.models.dataset import QualityStatus
from db.repositories.dataset_repository import DatasetRepository
from llm_synthesis.schema import FinalReport

logger = logging.getLogger(__name__)

OK_THRESHOLD = 80
WARNING_THRESHOLD = 50


def _score_of(report: FinalReport | Mapping[str, Any] | None) -> Any:
    if report is None:
        return None
    if isinstance(report, FinalReport):
        return report.quality_score
    return report.get("qualityScore")


def determine_status(report: FinalReport | Mapping[str, Any] | None) -> str:
    """
    Pure mapping from a report's quality score to a quality status.

    Missing report or a falsy score (None, 0) is an error.
    """

    score = _score_of(report)
    if not score or isinstance(score, bool) or not isinstance(score, (int, float)):
        return QualityStatus.ERROR
    if score >= OK_THRESHOLD:
        return QualityStatus.OK
    if score >= WARNING_THRESHOLD:
        return QualityStatus.WARNING
    return QualityStatus.ERROR


class StatusFinalizer:
    """
    Writes the terminal status, completion time and full report together.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._datasets = DatasetRepository(session)

    def finalize(
        self,
        dataset_id: uuid.UUID,
        report: FinalReport,
        *,
        completed_at: datetime | None = None,
    ) -> str | None:
        """
        Persist the report and return the status written.

        Returns None (and rolls back) when the dataset left ``processing``
        while the pipeline ran, e.g. after a concurrent reset.
        """

        status = determine_status(report)
        written = self._datasets.store_final_report(
            dataset_id,
            status=status,
            report=report.to_document(),
            completed_at=completed_at or datetime.now(timezone.utc),
        )
        if not written:
            self._session.rollback()
            logger.warning(
                "Dataset %s is no longer processing; final report discarded",
                dataset_id,
            )
            return None

        self._session.commit()
        logger.info(
            "Stored quality report dataset_id=%s status=%s score=%s",
            dataset_id,
            status,
            report.quality_score,
        )
        return status
