"""Structured prompt builders for the interpretation and synthesis stages."""

import json
from dataclasses import dataclass
from typing import Any, Dict, List

from app.domain.quality_audit import DatasetContext
from llm_synthesis.schema import FINAL_REPORT_KEYS
from quality.analyzer import ProgrammaticReport
from quality.statistics import ColumnStatistics, IssueType

CATEGORICAL_CARDINALITY_LIMIT = 50


class PromptType:
    DATE_FORMAT_ISSUES = "date_format_issues"
    NUMERIC_ISSUES = "numeric_issues"
    MISSING_VALUES = "missing_values"
    CATEGORICAL_ANALYSIS = "categorical_analysis"
    GENERAL_COLUMN_ASSESSMENT = "general_column_assessment"


@dataclass(frozen=True)
class Prompt:
    """One system + user prompt pair for ``BaseLLMAdapter.complete``."""

    system: str
    user: str


_COLUMN_SYSTEM_PROMPT = (
    "You are an expert data scientist specialized in data quality assessment. "
    "You provide clear, concise insights about dataset columns and actionable "
    "recommendations. Always respond with a valid JSON object."
)

_OVERALL_SYSTEM_PROMPT = (
    "You are an expert data scientist specialized in data quality assessment. "
    "You provide clear, concise insights about datasets and actionable "
    "recommendations. Always respond with a valid JSON array."
)

_SYNTHESIS_SYSTEM_PROMPT = """\
You are an expert data scientist specialized in creating data quality audit \
reports. You synthesize technical findings into clear, actionable reports for \
business users.

STRICT RULES:
- Respond with ONLY the raw JSON object, starting with '{' and ending with '}'.
- Do NOT wrap the JSON in markdown code fences.
- Do NOT include any text outside the JSON object.
"""

# Per prompt type: task line, questions, response keys.
_COLUMN_TASKS: Dict[str, Dict[str, Any]] = {
    PromptType.DATE_FORMAT_ISSUES: {
        "task": (
            "You are analyzing a dataset column with date format issues. Identify "
            "patterns and recommend how to clean it."
        ),
        "questions": [
            "What date formats appear to be present in this column?",
            "Is there a dominant format that appears most frequently?",
            "What specific inconsistencies exist in the date formats?",
            "How can the user standardize these dates (Excel, Python or SQL examples)?",
            "Are there other concerns about this column that might affect analysis?",
        ],
        "keys": {
            "identifiedFormats": "Array of date formats found",
            "dominantFormat": "The most common format if identifiable",
            "inconsistencies": "Specific issues found",
            "cleaningSteps": "Recommended steps to clean and standardize",
            "concerns": "Any additional concerns",
        },
    },
    PromptType.NUMERIC_ISSUES: {
        "task": (
            "You are analyzing a dataset column with numeric inconsistencies. "
            "Identify patterns and recommend how to clean it."
        ),
        "questions": [
            "What numeric format issues appear to be present in this column?",
            "Are there non-numeric characters (currency symbols, commas, percent signs) to clean?",
            "Are there outliers or suspicious values that should be reviewed?",
            "How can the user clean these values (Excel, Python or SQL examples)?",
            "Are there other concerns about this column that might affect analysis?",
        ],
        "keys": {
            "identifiedIssues": "Array of numeric format issues found",
            "nonNumericCharacters": "Characters that need to be removed",
            "outlierConcerns": "Potential outliers or suspicious values",
            "cleaningSteps": "Recommended steps to clean and standardize",
            "concerns": "Any additional concerns",
        },
    },
    PromptType.MISSING_VALUES: {
        "task": (
            "You are analyzing a dataset column with significant missing values. "
            "Assess the impact and make recommendations."
        ),
        "questions": [
            "How might the missing values impact analysis of this dataset?",
            "Based on the description and examples, why might data be missing?",
            "What are the best strategies for handling these missing values?",
            "If imputation is appropriate, which method would you recommend?",
            "Should the user be concerned about bias introduced by the missing values?",
        ],
        "keys": {
            "impact": "How missing values impact analysis",
            "possibleReasons": "Possible reasons for missing values",
            "recommendedStrategy": "Best approach for handling missing values",
            "imputationMethod": "Recommended method if imputation is appropriate",
            "biasConcerns": "Potential bias considerations",
        },
    },
    PromptType.CATEGORICAL_ANALYSIS: {
        "task": (
            "You are analyzing a categorical column in a dataset. Assess the values "
            "and make recommendations."
        ),
        "questions": [
            "Are there inconsistencies or standardization issues in these values?",
            "Are there misspellings or variations that should be consolidated?",
            "Is the cardinality appropriate for a categorical variable?",
            "How can the user clean and standardize these values if needed?",
            "Are there other patterns in these categorical values?",
        ],
        "keys": {
            "inconsistencies": "Identified inconsistencies or standardization issues",
            "valueGroups": "Suggestions for grouping similar values",
            "cardinalityConcerns": "Whether cardinality is appropriate",
            "cleaningSteps": "Recommended steps to clean and standardize",
            "insights": "Additional patterns or insights",
        },
    },
    PromptType.GENERAL_COLUMN_ASSESSMENT: {
        "task": (
            "You are analyzing a column in a dataset. Provide a general assessment "
            "and recommendations."
        ),
        "questions": [
            "What is the apparent data type and purpose of this column?",
            "Are there quality issues or inconsistencies in the values?",
            "How could data quality in this column be improved?",
            "How could this column be used most effectively in analysis?",
            "Any other observations about this column?",
        ],
        "keys": {
            "dataTypeAssessment": "Assessment of the data type and purpose",
            "qualityIssues": "Identified quality issues or inconsistencies",
            "recommendations": "Recommendations for improving quality",
            "analyticalUse": "How to use this column in analysis",
            "additionalInsights": "Other observations",
        },
    },
}

_OVERALL_INSIGHT_TYPES = [
    "general_assessment",
    "major_concern",
    "pattern",
    "impact",
    "recommendation",
    "quality_rating",
]


def select_prompt_type(column: ColumnStatistics) -> str:
    """Pick the column prompt from the column's shape and issues."""
    issue_types = {issue.type for issue in column.issues}
    if column.appearing_dates and IssueType.INCONSISTENT_DATES in issue_types:
        return PromptType.DATE_FORMAT_ISSUES
    if column.appearing_numeric and IssueType.INCONSISTENT_NUMERIC in issue_types:
        return PromptType.NUMERIC_ISSUES
    if column.missing_percentage > 10:
        return PromptType.MISSING_VALUES
    if (
        0 < column.cardinality <= CATEGORICAL_CARDINALITY_LIMIT
        and not column.appearing_numeric
        and not column.appearing_dates
    ):
        return PromptType.CATEGORICAL_ANALYSIS
    return PromptType.GENERAL_COLUMN_ASSESSMENT


def _apparent_type(column: ColumnStatistics) -> str:
    if column.appearing_numeric:
        return "numeric"
    if column.appearing_dates:
        return "dates"
    return "text/categorical"


def _format_examples(column: ColumnStatistics) -> str:
    lines = [f'Row {ex["row_number"]}: "{ex["value"]}"' for ex in column.examples]
    return "\n".join(lines) if lines else "(no non-missing values)"


def _context_lines(context: DatasetContext) -> List[str]:
    lines = [
        f"- Dataset name: {context.dataset_name}",
        f"- Dataset description: {context.dataset_description}",
    ]
    if context.original_filename:
        lines.append(f"- Original file: {context.original_filename}")
    lines.extend(f"- {hint}" for hint in context.user_hints())
    return lines


def _format_keys(keys: Dict[str, str]) -> str:
    return "\n".join(f'- "{key}": {meaning}' for key, meaning in keys.items())


class InterpretationPromptBuilder:
    """Builds per-column and overall-dataset interpretation prompts."""

    def build_column_prompt(
        self,
        column: ColumnStatistics,
        context: DatasetContext,
        report: ProgrammaticReport,
    ) -> Prompt:
        prompt_type = select_prompt_type(column)
        task = _COLUMN_TASKS[prompt_type]

        context_block = _context_lines(context) + [
            f"- Column name: {column.name}",
            f"- Column description: {context.describe_column(column.name)}",
        ]
        stats_block = self._column_statistics(prompt_type, column, report)
        questions = "\n".join(
            f"{index}. {question}" for index, question in enumerate(task["questions"], start=1)
        )

        if prompt_type == PromptType.CATEGORICAL_ANALYSIS:
            values = list(column.unique_values)[:CATEGORICAL_CARDINALITY_LIMIT]
            values_title = "UNIQUE VALUES"
            values_block = ", ".join(f'"{value}"' for value in values)
        else:
            values_title = "EXAMPLE VALUES"
            values_block = _format_examples(column)

        user = (
            f"{task['task']}\n\n"
            "DATASET CONTEXT:\n" + "\n".join(context_block) + "\n\n"
            "COLUMN STATISTICS:\n" + "\n".join(stats_block) + "\n\n"
            f"{values_title}:\n{values_block}\n\n"
            f"Based on the data provided, answer the following questions:\n{questions}\n\n"
            "Format your response as a JSON object with the following keys:\n"
            f"{_format_keys(task['keys'])}\n"
        )
        return Prompt(system=_COLUMN_SYSTEM_PROMPT, user=user)

    def build_overall_prompt(
        self,
        context: DatasetContext,
        report: ProgrammaticReport,
    ) -> Prompt:
        column_lines = [
            f'- "{name}": {context.describe_column(name)}' for name in report.columns
        ]
        dataset_issue_lines = [
            f"- {issue.type}: {issue.description} (Severity: {issue.severity})"
            for issue in report.issues
        ] or ["- none"]
        column_issue_lines = [
            f'- "{column.name}": ' + ", ".join(issue.description for issue in column.issues)
            for column in report.columns_with_issues()
        ] or ["- none"]

        user = (
            "You are analyzing a dataset for quality issues. Provide an overall "
            "assessment based on the programmatic findings.\n\n"
            "DATASET CONTEXT:\n"
            + "\n".join(
                _context_lines(context)
                + [
                    f"- File type: {report.file_type}",
                    f"- Total rows: {report.row_count}",
                    f"- Total columns: {report.column_count}",
                ]
            )
            + "\n\nCOLUMN INFORMATION:\n" + "\n".join(column_lines)
            + "\n\nOVERALL ISSUES:\n" + "\n".join(dataset_issue_lines)
            + "\n\nCOLUMN-SPECIFIC ISSUES:\n" + "\n".join(column_issue_lines)
            + "\n\nBased on the data provided, answer the following questions:\n"
            "1. What are the most significant data quality concerns in this dataset?\n"
            "2. Do patterns of issues suggest systematic collection or processing problems?\n"
            "3. How might these issues impact analysis or models built on this data?\n"
            "4. What are the top 3-5 recommendations for improving overall data quality?\n"
            "5. Is this dataset high, medium or low quality? Why?\n\n"
            "Format your response as a JSON array of insight objects with the keys:\n"
            f'- "type": One of {json.dumps(_OVERALL_INSIGHT_TYPES)}\n'
            '- "title": Brief title for the insight\n'
            '- "content": Detailed explanation\n'
            '- "severity": One of ["low", "medium", "high"]\n'
        )
        return Prompt(system=_OVERALL_SYSTEM_PROMPT, user=user)

    def _column_statistics(
        self,
        prompt_type: str,
        column: ColumnStatistics,
        report: ProgrammaticReport,
    ) -> List[str]:
        lines = [f"- Total rows: {report.row_count}"]
        if prompt_type == PromptType.DATE_FORMAT_ISSUES:
            lines += [
                f"- Non-null values: {column.non_null_count}",
                f"- Values that parsed as dates: {column.date_attempt_count}",
                f"- Values that failed date parsing: {column.non_null_count - column.date_attempt_count}",
            ]
        elif prompt_type == PromptType.NUMERIC_ISSUES:
            lines += [
                f"- Non-null values: {column.non_null_count}",
                f"- Values that parsed as numbers: {column.numeric_count}",
                f"- Non-numeric values: {column.non_numeric_count}",
                f"- Minimum numeric value: {'N/A' if column.min_value is None else column.min_value}",
                f"- Maximum numeric value: {'N/A' if column.max_value is None else column.max_value}",
            ]
        elif prompt_type == PromptType.MISSING_VALUES:
            lines += [
                f"- Null values: {column.null_count}",
                f"- Empty strings: {column.empty_string_count}",
                f"- Whitespace-only values: {column.whitespace_count}",
                f"- Column appears to be: {_apparent_type(column)}",
                f"- Cardinality (unique values): {column.cardinality}",
            ]
        elif prompt_type == PromptType.CATEGORICAL_ANALYSIS:
            lines += [
                f"- Non-null values: {column.non_null_count}",
                f"- Cardinality (unique values): {column.cardinality}",
            ]
        else:
            lines += [
                f"- Non-null values: {column.non_null_count}",
                f"- Column appears to be: {_apparent_type(column)}",
                f"- Cardinality (unique values): {column.cardinality}",
            ]
            if column.appearing_numeric:
                lines += [
                    f"- Minimum value: {column.min_value}",
                    f"- Maximum value: {column.max_value}",
                ]
        lines.append(f"- Missing values percentage: {column.missing_percentage:.2f}%")
        return lines


class SynthesisPromptBuilder:
    """Builds the single synthesis prompt that produces the final report.

    Combines dataset context, a summary of the programmatic findings and the
    interpretation output, and pins the exact top-level keys of the answer.
    """

    def build_prompt(
        self,
        context: DatasetContext,
        report: ProgrammaticReport,
        interpretation: Dict[str, Any],
    ) -> Prompt:
        """Build the full synthesis prompt.

        Args:
            context: Dataset identity, description and user hints.
            report: Programmatic findings from the statistical analyzer.
            interpretation: Interpretation stage output document.

        Returns:
            A Prompt ready for ``BaseLLMAdapter.complete``.
        """
        summary = self.summarize_findings(report)
        header = _context_lines(context) + [
            f"- File type: {report.file_type}",
            f"- Total rows: {report.row_count}",
            f"- Total columns: {report.column_count}",
        ]

        user = (
            "You are generating a comprehensive data quality audit report. "
            "Synthesize the programmatic findings and AI insights into a clear, "
            "actionable report for a business user.\n\n"
            "DATASET CONTEXT:\n" + "\n".join(header) + "\n\n"
            f"PROGRAMMATIC FINDINGS:\n{json.dumps(summary, indent=2, default=str)}\n\n"
            f"AI INSIGHTS:\n{json.dumps(interpretation, indent=2, default=str)}\n\n"
            "Create a data quality report with these sections:\n"
            "1. Executive Summary: overview of dataset quality, major findings and key recommendations.\n"
            "2. Quality Score: a score from 0 to 100 with an explanation of how it was determined.\n"
            "3. Key Findings: the most important quality issues discovered.\n"
            "4. Detailed Analysis: in-depth examination of issues, organized by category.\n"
            "5. Recommendations: actionable steps to improve quality, prioritized by impact.\n\n"
            "Respond with ONE JSON object with exactly these top-level keys:\n"
            f"{json.dumps(list(FINAL_REPORT_KEYS))}\n"
            '- "executiveSummary": string\n'
            '- "qualityScore": number between 0 and 100\n'
            '- "scoreExplanation": string\n'
            '- "keyFindings": array of objects with "issue" and "impact" keys\n'
            '- "detailedAnalysis": object with categories as keys and arrays of findings as values\n'
            '- "recommendations": array of objects with "recommendation", "priority" and "rationale" keys\n'
            '- "metadata": object\n\n'
            "Your response must be JSON only."
        )
        return Prompt(system=_SYNTHESIS_SYSTEM_PROMPT, user=user)

    @staticmethod
    def summarize_findings(report: ProgrammaticReport) -> Dict[str, Any]:
        """Compact view of the programmatic report for the synthesis call."""
        return {
            "rowCount": report.row_count,
            "columnCount": report.column_count,
            "raggedRows": report.ragged_rows.count,
            "overallIssues": [issue.to_dict() for issue in report.issues],
            "columnsWithIssues": [
                {
                    "name": column.name,
                    "issues": [issue.to_dict() for issue in column.issues],
                    "missingPercentage": round(column.missing_percentage, 2),
                }
                for column in report.columns_with_issues()
            ],
            "processingTimeMs": report.processing_time_ms,
        }
