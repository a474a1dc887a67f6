"""
Dataset repository: lookups and guarded quality-audit state transitions.

Every state transition is a single conditional UPDATE whose WHERE clause
carries the expected current status, so two writers racing on the same
dataset cannot both succeed. Callers inspect the returned bool and own the
transaction (commit / rollback).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from db.models.dataset import Dataset, QualityStatus


class DatasetRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, dataset_id: uuid.UUID, *, refresh: bool = False) -> Dataset | None:
        """
        Load one dataset. ``refresh`` bypasses the identity map so the caller
        sees the row as currently committed.
        """

        return self._session.get(Dataset, dataset_id, populate_existing=refresh)

    def claim_for_audit(self, dataset_id: uuid.UUID, *, requested_at: datetime) -> bool:
        """
        Move not_run → processing, clearing any residue of a previous run.
        """

        return self._transition(
            dataset_id,
            expected=(QualityStatus.NOT_RUN,),
            values={
                "quality_status": QualityStatus.PROCESSING,
                "quality_audit_requested_at": requested_at,
                "quality_audit_completed_at": None,
                "quality_report": None,
            },
        )

    def store_final_report(
        self,
        dataset_id: uuid.UUID,
        *,
        status: str,
        report: dict[str, Any],
        completed_at: datetime,
    ) -> bool:
        """
        Write the terminal status and report together; only from processing.
        """

        if status not in QualityStatus.TERMINAL:
            raise ValueError(f"Not a terminal quality status: {status!r}")
        return self._transition(
            dataset_id,
            expected=(QualityStatus.PROCESSING,),
            values={
                "quality_status": status,
                "quality_audit_completed_at": completed_at,
                "quality_report": report,
            },
        )

    def mark_failed(
        self,
        dataset_id: uuid.UUID,
        *,
        error_message: str,
        failed_at: datetime,
    ) -> bool:
        """
        Record a pipeline failure envelope; only from processing.
        """

        return self._transition(
            dataset_id,
            expected=(QualityStatus.PROCESSING,),
            values={
                "quality_status": QualityStatus.ERROR,
                "quality_audit_completed_at": failed_at,
                "quality_report": {
                    "error": error_message,
                    "timestamp": failed_at.isoformat(),
                },
            },
        )

    def reset_audit(self, dataset_id: uuid.UUID) -> bool:
        """
        Clear every audit field back to not_run unless an audit is running.
        """

        return self._transition(
            dataset_id,
            expected=(
                QualityStatus.NOT_RUN,
                QualityStatus.OK,
                QualityStatus.WARNING,
                QualityStatus.ERROR,
            ),
            values={
                "quality_status": QualityStatus.NOT_RUN,
                "quality_audit_requested_at": None,
                "quality_audit_completed_at": None,
                "quality_report": None,
            },
        )

    def _transition(
        self,
        dataset_id: uuid.UUID,
        *,
        expected: tuple[str, ...],
        values: dict[str, Any],
    ) -> bool:
        stmt = (
            update(Dataset)
            .where(Dataset.id == dataset_id)
            .where(Dataset.quality_status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        return result.rowcount == 1
