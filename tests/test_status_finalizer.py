"""
tests/test_status_finalizer.py

Score-to-status mapping and the guarded report write.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from db.models.dataset import QualityStatus
from db.repositories.dataset_repository import DatasetRepository
from llm_synthesis.schema import FinalReport
from quality.finalizer import StatusFinalizer, determine_status

COMPLETED_AT = datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc)


def _report(score) -> FinalReport:
    return FinalReport(executive_summary="summary", quality_score=score)


class TestDetermineStatus:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (100, QualityStatus.OK),
            (85, QualityStatus.OK),
            (80, QualityStatus.OK),
            (79.9, QualityStatus.WARNING),
            (65, QualityStatus.WARNING),
            (50, QualityStatus.WARNING),
            (49, QualityStatus.ERROR),
            (30, QualityStatus.ERROR),
            (0, QualityStatus.ERROR),
            (None, QualityStatus.ERROR),
        ],
    )
    def test_report_scores(self, score, expected: str) -> None:
        assert determine_status(_report(score)) == expected

    def test_missing_report(self) -> None:
        assert determine_status(None) == QualityStatus.ERROR

    @pytest.mark.parametrize(
        ("document", "expected"),
        [
            ({"qualityScore": 92}, QualityStatus.OK),
            ({"qualityScore": "85"}, QualityStatus.ERROR),
            ({"qualityScore": True}, QualityStatus.ERROR),
            ({}, QualityStatus.ERROR),
        ],
    )
    def test_raw_documents(self, document: dict, expected: str) -> None:
        assert determine_status(document) == expected


class TestStatusFinalizer:
    def test_stores_status_report_and_completion(self, db, make_user, make_dataset) -> None:
        dataset = make_dataset(owner=make_user(), quality_status=QualityStatus.PROCESSING)

        status = StatusFinalizer(db).finalize(dataset.id, _report(65), completed_at=COMPLETED_AT)

        stored = DatasetRepository(db).get(dataset.id, refresh=True)
        assert status == QualityStatus.WARNING
        assert stored.quality_status == QualityStatus.WARNING
        assert stored.quality_report["qualityScore"] == 65
        assert stored.quality_audit_completed_at is not None

    def test_zero_score_is_stored_as_error(self, db, make_user, make_dataset) -> None:
        dataset = make_dataset(owner=make_user(), quality_status=QualityStatus.PROCESSING)

        status = StatusFinalizer(db).finalize(dataset.id, _report(0), completed_at=COMPLETED_AT)

        assert status == QualityStatus.ERROR
        assert DatasetRepository(db).get(dataset.id, refresh=True).quality_report["qualityScore"] == 0

    def test_discards_report_when_not_processing(self, db, make_user, make_dataset) -> None:
        dataset = make_dataset(owner=make_user())

        status = StatusFinalizer(db).finalize(dataset.id, _report(90), completed_at=COMPLETED_AT)

        stored = DatasetRepository(db).get(dataset.id, refresh=True)
        assert status is None
        assert stored.quality_status == QualityStatus.NOT_RUN
        assert stored.quality_report is None
