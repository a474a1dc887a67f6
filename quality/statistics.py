"""
quality/statistics.py

Per-column running statistics accumulated over a row stream, plus the
threshold rules that turn finished statistics into column issues.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

UNIQUE_VALUE_CAP = 1000
EXAMPLE_CAP = 10
SERIALIZED_UNIQUE_VALUES = 100

# Share of non-null values that must parse for a column to "look" numeric / dated.
APPEARANCE_RATIO = 0.8

HIGH_MISSING_THRESHOLD = 10.0
SEVERE_MISSING_THRESHOLD = 50.0
HIGH_CARDINALITY_THRESHOLD = 95.0

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%a, %d %b %Y %H:%M:%S",
    "%a %b %d %Y",
)


class Severity:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueType:
    HIGH_MISSING_VALUES = "high_missing_values"
    INCONSISTENT_NUMERIC = "inconsistent_numeric"
    INCONSISTENT_DATES = "inconsistent_dates"
    HIGH_CARDINALITY = "high_cardinality"
    RAGGED_ROWS = "ragged_rows"
    MULTIPLE_HIGH_MISSING_COLUMNS = "multiple_high_missing_columns"


@dataclass(frozen=True)
class QualityIssue:
    """
    One detected problem, at column or dataset level.
    """

    type: str
    description: str
    severity: str
    examples: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "description": self.description,
            "severity": self.severity,
        }
        if self.examples is not None:
            payload["examples"] = list(self.examples)
        return payload


def coerce_number(value: Any) -> int | float | None:
    """
    Return the numeric value of ``value`` or None when it is not a number.

    Native ints and floats pass through (bools do not); strings are parsed
    after trimming. NaN is never a number.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or "_" in text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def parse_date(text: str) -> datetime | None:
    """
    Best-effort date parsing across ISO 8601 and common spreadsheet formats.
    """

    candidate = text.strip()
    if not candidate:
        return None
    try:
        return datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt)
        except ValueError:
            continue
    return None


def _percentage(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


@dataclass
class ColumnStatistics:
    """
    Running statistics for one column.

    ``observe`` is called once per row; ``finalize`` derives percentages,
    type appearance flags and issues once the stream is exhausted.
    """

    name: str
    unique_cap: int = UNIQUE_VALUE_CAP
    example_cap: int = EXAMPLE_CAP

    non_null_count: int = 0
    null_count: int = 0
    empty_string_count: int = 0
    whitespace_count: int = 0
    numeric_count: int = 0
    non_numeric_count: int = 0
    date_attempt_count: int = 0
    min_value: int | float | None = None
    max_value: int | float | None = None
    # dict keeps first-seen order, which a set would not.
    unique_values: dict[Any, None] = field(default_factory=dict)
    examples: list[dict[str, Any]] = field(default_factory=list)

    null_percentage: float = 0.0
    empty_string_percentage: float = 0.0
    whitespace_percentage: float = 0.0
    missing_percentage: float = 0.0
    cardinality: int = 0
    cardinality_percentage: float = 0.0
    appearing_numeric: bool = False
    appearing_dates: bool = False
    issues: list[QualityIssue] = field(default_factory=list)

    @property
    def missing_count(self) -> int:
        return self.null_count + self.empty_string_count + self.whitespace_count

    def observe(self, value: Any, row_number: int) -> None:
        if value is None:
            self.null_count += 1
            return
        if isinstance(value, str):
            if value == "":
                self.empty_string_count += 1
                return
            if value.strip() == "":
                self.whitespace_count += 1
                return

        self.non_null_count += 1

        number = coerce_number(value)
        if number is not None:
            self.numeric_count += 1
            if self.min_value is None or number < self.min_value:
                self.min_value = number
            if self.max_value is None or number > self.max_value:
                self.max_value = number
        else:
            self.non_numeric_count += 1
            if isinstance(value, str) and parse_date(value) is not None:
                self.date_attempt_count += 1

        if len(self.unique_values) < self.unique_cap:
            self.unique_values.setdefault(value, None)

        if len(self.examples) < self.example_cap:
            self.examples.append({"row_number": row_number, "value": value})

    def finalize(self, total_rows: int) -> None:
        self.null_percentage = _percentage(self.null_count, total_rows)
        self.empty_string_percentage = _percentage(self.empty_string_count, total_rows)
        self.whitespace_percentage = _percentage(self.whitespace_count, total_rows)
        self.missing_percentage = _percentage(self.missing_count, total_rows)

        self.cardinality = len(self.unique_values)
        self.cardinality_percentage = _percentage(self.cardinality, self.non_null_count)

        self.appearing_numeric = (
            self.non_null_count > 0
            and self.numeric_count / self.non_null_count > APPEARANCE_RATIO
        )
        self.appearing_dates = (
            self.non_null_count > 0
            and self.date_attempt_count / self.non_null_count > APPEARANCE_RATIO
        )

        self.issues = self._detect_issues()

    def _detect_issues(self) -> list[QualityIssue]:
        issues: list[QualityIssue] = []

        if self.missing_percentage > HIGH_MISSING_THRESHOLD:
            issues.append(
                QualityIssue(
                    type=IssueType.HIGH_MISSING_VALUES,
                    description=(
                        f"High percentage of missing values: {self.missing_percentage:.2f}%"
                    ),
                    severity=(
                        Severity.HIGH
                        if self.missing_percentage > SEVERE_MISSING_THRESHOLD
                        else Severity.MEDIUM
                    ),
                )
            )

        if self.appearing_numeric and self.non_numeric_count > 0:
            issues.append(
                QualityIssue(
                    type=IssueType.INCONSISTENT_NUMERIC,
                    description=(
                        f"Column appears numeric but has {self.non_numeric_count} "
                        "non-numeric values"
                    ),
                    severity=Severity.MEDIUM,
                )
            )

        if self.appearing_dates and self.non_null_count > self.date_attempt_count:
            issues.append(
                QualityIssue(
                    type=IssueType.INCONSISTENT_DATES,
                    description=(
                        "Column appears to contain dates but has "
                        f"{self.non_null_count - self.date_attempt_count} non-date values"
                    ),
                    severity=Severity.MEDIUM,
                )
            )

        if (
            not self.appearing_numeric
            and not self.appearing_dates
            and self.cardinality_percentage > HIGH_CARDINALITY_THRESHOLD
        ):
            issues.append(
                QualityIssue(
                    type=IssueType.HIGH_CARDINALITY,
                    description=(
                        f"High unique value ratio ({self.cardinality_percentage:.2f}%), "
                        "possibly unique identifiers or free text"
                    ),
                    severity=Severity.LOW,
                )
            )

        return issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "non_null_count": self.non_null_count,
            "null_count": self.null_count,
            "empty_string_count": self.empty_string_count,
            "whitespace_count": self.whitespace_count,
            "numeric_count": self.numeric_count,
            "non_numeric_count": self.non_numeric_count,
            "date_attempt_count": self.date_attempt_count,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "null_percentage": self.null_percentage,
            "empty_string_percentage": self.empty_string_percentage,
            "whitespace_percentage": self.whitespace_percentage,
            "missing_percentage": self.missing_percentage,
            "cardinality": self.cardinality,
            "cardinality_percentage": self.cardinality_percentage,
            "appearing_numeric": self.appearing_numeric,
            "appearing_dates": self.appearing_dates,
            "unique_values": list(self.unique_values)[:SERIALIZED_UNIQUE_VALUES],
            "examples": list(self.examples),
            "issues": [issue.to_dict() for issue in self.issues],
        }
