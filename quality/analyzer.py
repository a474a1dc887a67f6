"""
quality/analyzer.py

Statistical analyzer: a single streaming pass over a stored dataset file that
produces the programmatic report consumed by the AI stages.
"""

from __future__ import annotations

import csv
import logging
import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, BinaryIO

from app.domain.quality_audit import SourceUnavailableError
from db.repositories.errors import FileStorageError
from db.repositories.storage import FileStorageBackend
from quality.rows import dedupe_header, iter_csv_rows
from quality.statistics import (
    EXAMPLE_CAP,
    UNIQUE_VALUE_CAP,
    ColumnStatistics,
    IssueType,
    QualityIssue,
    Severity,
)

logger = logging.getLogger(__name__)

RAGGED_EXAMPLE_CAP = 5
# Dataset-level rule: columns above this missing share count towards
# multiple_high_missing_columns.
DATASET_MISSING_THRESHOLD = 20.0


@dataclass
class RaggedRowSummary:
    count: int = 0
    examples: list[dict[str, int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "examples": list(self.examples)}


@dataclass
class ProgrammaticReport:
    """
    Deterministic findings for one dataset file.
    """

    file_type: str
    row_count: int = 0
    column_count: int = 0
    file_size_bytes: int = 0
    processing_time_ms: int = 0
    columns: dict[str, ColumnStatistics] = field(default_factory=dict)
    ragged_rows: RaggedRowSummary = field(default_factory=RaggedRowSummary)
    issues: list[QualityIssue] = field(default_factory=list)

    def columns_with_issues(self) -> list[ColumnStatistics]:
        return [column for column in self.columns.values() if column.issues]

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_count": self.row_count,
            "column_count": self.column_count,
            "file_type": self.file_type,
            "file_size_bytes": self.file_size_bytes,
            "processing_time_ms": self.processing_time_ms,
            "ragged_rows": self.ragged_rows.to_dict(),
            "columns": {name: column.to_dict() for name, column in self.columns.items()},
            "issues": [issue.to_dict() for issue in self.issues],
        }


def file_type_from_path(storage_path: str) -> str:
    return PurePosixPath(storage_path).suffix.lower().lstrip(".")


class StatisticalAnalyzer:
    """
    Folds the row iterator of a stored CSV file into a ProgrammaticReport.

    Memory stays bounded per column: unique values and examples are capped,
    rows are never retained.
    """

    def __init__(
        self,
        storage: FileStorageBackend,
        *,
        unique_cap: int = UNIQUE_VALUE_CAP,
        example_cap: int = EXAMPLE_CAP,
        ragged_example_cap: int = RAGGED_EXAMPLE_CAP,
    ) -> None:
        self._storage = storage
        self._unique_cap = max(1, unique_cap)
        self._example_cap = max(0, example_cap)
        self._ragged_example_cap = max(0, ragged_example_cap)

    def analyze(self, storage_path: str) -> ProgrammaticReport:
        """
        Analyze the file stored at ``storage_path``.

        Raises:
            SourceUnavailableError: The file is missing, cannot be opened, or
                cannot be read as UTF-8 CSV.
        """

        logger.info("Starting programmatic analysis path=%s", storage_path)
        try:
            if not self._storage.exists(storage_path):
                raise SourceUnavailableError(f"File not found at path: {storage_path}")
            stream = self._storage.open_read_stream(storage_path)
        except FileStorageError as exc:
            raise SourceUnavailableError(str(exc)) from exc

        with stream:
            report = self.analyze_stream(
                stream,
                file_type=file_type_from_path(storage_path),
                file_size_bytes=self._storage.size(storage_path),
            )

        logger.info(
            "Completed programmatic analysis path=%s rows=%d columns=%d issues=%d",
            storage_path,
            report.row_count,
            report.column_count,
            len(report.issues),
        )
        return report

    def analyze_stream(
        self,
        stream: BinaryIO,
        *,
        file_type: str = "csv",
        file_size_bytes: int | None = None,
    ) -> ProgrammaticReport:
        report = ProgrammaticReport(file_type=file_type)
        started = time.monotonic()

        try:
            self._consume(stream, report)
        except UnicodeDecodeError as exc:
            raise SourceUnavailableError("Dataset file must be UTF-8 encoded.") from exc
        except csv.Error as exc:
            raise SourceUnavailableError(f"Error parsing CSV: {exc}") from exc
        except OSError as exc:
            raise SourceUnavailableError(f"Error reading dataset file: {exc}") from exc

        for column in report.columns.values():
            column.finalize(report.row_count)
        report.issues = self._dataset_issues(report)

        report.processing_time_ms = int((time.monotonic() - started) * 1000)
        report.file_size_bytes = file_size_bytes if file_size_bytes is not None else _bytes_consumed(stream)
        return report

    def _consume(self, stream: BinaryIO, report: ProgrammaticReport) -> None:
        rows = iter_csv_rows(stream)
        header = next(rows, None)
        if header is None or header == [""]:
            raise SourceUnavailableError("Dataset file has no header row.")

        names = dedupe_header(header)
        report.column_count = len(names)
        report.columns = {
            name: ColumnStatistics(
                name=name,
                unique_cap=self._unique_cap,
                example_cap=self._example_cap,
            )
            for name in names
        }
        accumulators = list(report.columns.values())
        expected = len(accumulators)

        for row in rows:
            report.row_count += 1
            row_number = report.row_count

            if len(row) != expected:
                report.ragged_rows.count += 1
                if len(report.ragged_rows.examples) < self._ragged_example_cap:
                    report.ragged_rows.examples.append(
                        {
                            "row_number": row_number,
                            "expected_columns": expected,
                            "actual_columns": len(row),
                        }
                    )

            for index, column in enumerate(accumulators):
                column.observe(row[index] if index < len(row) else None, row_number)

    def _dataset_issues(self, report: ProgrammaticReport) -> list[QualityIssue]:
        issues: list[QualityIssue] = []

        if report.ragged_rows.count > 0:
            issues.append(
                QualityIssue(
                    type=IssueType.RAGGED_ROWS,
                    description=(
                        f"Dataset contains {report.ragged_rows.count} rows with "
                        "inconsistent column counts"
                    ),
                    severity=Severity.HIGH,
                    examples=list(report.ragged_rows.examples),
                )
            )

        high_missing_columns = sum(
            1
            for column in report.columns.values()
            if column.missing_percentage > DATASET_MISSING_THRESHOLD
        )
        if high_missing_columns > 0:
            issues.append(
                QualityIssue(
                    type=IssueType.MULTIPLE_HIGH_MISSING_COLUMNS,
                    description=(
                        f"Dataset has {high_missing_columns} columns with "
                        f">{DATASET_MISSING_THRESHOLD:.0f}% missing values"
                    ),
                    severity=(
                        Severity.HIGH
                        if high_missing_columns > report.column_count / 3
                        else Severity.MEDIUM
                    ),
                )
            )

        return issues


def _bytes_consumed(stream: BinaryIO) -> int:
    try:
        return int(stream.tell())
    except (OSError, ValueError):
        return 0
