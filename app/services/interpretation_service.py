"""
Interpretation stage: semantic commentary on the analyzer's findings.

The most severe columns are interpreted one by one, then the dataset as a
whole. Unparsable model output is kept verbatim; transport failure aborts.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from app.config import LLMSettings, get_llm_settings, get_quality_audit_settings
from app.domain.quality_audit import DatasetContext, RemoteCallFailure
from app.logging_utils import log_event
from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.prompt_builder import InterpretationPromptBuilder, Prompt, select_prompt_type
from llm_synthesis.retry import LLMRetryExhaustedError, complete_with_retry
from llm_synthesis.schema import InterpretationOutput
from llm_synthesis.validator import LLMOutputValidationError, parse_json_payload
from quality.analyzer import ProgrammaticReport
from quality.statistics import ColumnStatistics, Severity

logger = logging.getLogger(__name__)

_SEVERITY_WEIGHTS = {Severity.HIGH: 3, Severity.MEDIUM: 2}


def severity_score(column: ColumnStatistics) -> int:
    return sum(_SEVERITY_WEIGHTS.get(issue.severity, 1) for issue in column.issues)


def rank_columns(report: ProgrammaticReport, limit: int) -> list[ColumnStatistics]:
    """
    Columns with issues, most severe first; ties keep header order.
    """

    ranked = sorted(report.columns_with_issues(), key=severity_score, reverse=True)
    return ranked[: max(0, limit)]


class InterpretationService:
    def __init__(
        self,
        adapter: BaseLLMAdapter,
        *,
        settings: LLMSettings | None = None,
        max_columns: int | None = None,
        prompt_builder: InterpretationPromptBuilder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._adapter = adapter
        self._settings = settings or get_llm_settings()
        self._max_columns = (
            max_columns
            if max_columns is not None
            else get_quality_audit_settings().max_interpreted_columns
        )
        self._prompt_builder = prompt_builder or InterpretationPromptBuilder()
        self._sleep = sleep

    def interpret(
        self,
        context: DatasetContext,
        report: ProgrammaticReport,
    ) -> InterpretationOutput:
        """
        Run the per-column and overall calls.

        Raises:
            RemoteCallFailure: A model call failed after all retries.
        """

        output = InterpretationOutput()

        for column in rank_columns(report, self._max_columns):
            output.column_insights[column.name] = self._interpret_column(column, context, report)

        output.overall_insights = self._interpret_dataset(context, report)

        log_event(
            logger,
            logging.INFO,
            "interpretation_completed",
            dataset_id=str(context.dataset_id),
            columns_interpreted=len(output.column_insights),
            overall_insights=len(output.overall_insights),
        )
        return output

    def _interpret_column(
        self,
        column: ColumnStatistics,
        context: DatasetContext,
        report: ProgrammaticReport,
    ) -> dict[str, Any]:
        prompt_type = select_prompt_type(column)
        prompt = self._prompt_builder.build_column_prompt(column, context, report)
        raw = self._call(prompt, self._settings.column_max_tokens, stage="column_interpretation")

        insight: dict[str, Any] = {"columnName": column.name, "promptType": prompt_type}
        try:
            insight["insights"] = parse_json_payload(raw)
        except LLMOutputValidationError as exc:
            logger.warning(
                "Unparsable interpretation for column %s: %s",
                column.name,
                "; ".join(exc.errors),
            )
            insight["rawResponse"] = raw
        return insight

    def _interpret_dataset(
        self,
        context: DatasetContext,
        report: ProgrammaticReport,
    ) -> list[dict[str, Any]]:
        prompt = self._prompt_builder.build_overall_prompt(context, report)
        raw = self._call(prompt, self._settings.overall_max_tokens, stage="overall_interpretation")

        try:
            parsed = parse_json_payload(raw)
        except LLMOutputValidationError as exc:
            logger.warning("Unparsable overall interpretation: %s", "; ".join(exc.errors))
            return [
                {
                    "type": "parsing_error",
                    "title": "Error Parsing AI Response",
                    "content": raw,
                    "severity": "medium",
                }
            ]

        if isinstance(parsed, dict):
            return [parsed]
        if isinstance(parsed, list):
            return [item if isinstance(item, dict) else {"content": item} for item in parsed]
        return [{"type": "general_assessment", "content": parsed}]

    def _call(self, prompt: Prompt, max_tokens: int, *, stage: str) -> str:
        try:
            return complete_with_retry(
                self._adapter,
                system_prompt=prompt.system,
                user_prompt=prompt.user,
                max_tokens=max_tokens,
                temperature=self._settings.temperature,
                max_retries=self._settings.max_retries,
                backoff_initial_seconds=self._settings.backoff_initial_seconds,
                backoff_multiplier=self._settings.backoff_multiplier,
                sleep=self._sleep,
            )
        except LLMRetryExhaustedError as exc:
            raise RemoteCallFailure(stage=stage, message=str(exc.last_error)) from exc
