"""
Synthesis stage: one model call that merges the programmatic report and the
interpretation output into the final client-facing report.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from app.config import (
    LLMSettings,
    QualityAuditSettings,
    get_llm_settings,
    get_quality_audit_settings,
)
from app.domain.quality_audit import DatasetContext, MalformedResponseError, RemoteCallFailure
from app.logging_utils import log_event
from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.prompt_builder import SynthesisPromptBuilder
from llm_synthesis.retry import LLMRetryExhaustedError, complete_with_retry
from llm_synthesis.schema import FinalReport
from llm_synthesis.validator import LLMOutputValidationError, validate_final_report
from quality.analyzer import ProgrammaticReport

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportSynthesisService:
    def __init__(
        self,
        adapter: BaseLLMAdapter,
        *,
        settings: LLMSettings | None = None,
        audit_settings: QualityAuditSettings | None = None,
        prompt_builder: SynthesisPromptBuilder | None = None,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._adapter = adapter
        self._settings = settings or get_llm_settings()
        self._audit_settings = audit_settings or get_quality_audit_settings()
        self._prompt_builder = prompt_builder or SynthesisPromptBuilder()
        self._clock = clock
        self._sleep = sleep

    def synthesize(
        self,
        context: DatasetContext,
        report: ProgrammaticReport,
        interpretation: dict[str, Any],
    ) -> FinalReport:
        """
        Produce the final report.

        Malformed model output yields the fallback report instead of an error.

        Raises:
            RemoteCallFailure: The model call failed after all retries.
        """

        prompt = self._prompt_builder.build_prompt(context, report, interpretation)
        try:
            raw = complete_with_retry(
                self._adapter,
                system_prompt=prompt.system,
                user_prompt=prompt.user,
                max_tokens=self._settings.synthesis_max_tokens,
                temperature=self._settings.temperature,
                max_retries=self._settings.max_retries,
                backoff_initial_seconds=self._settings.backoff_initial_seconds,
                backoff_multiplier=self._settings.backoff_multiplier,
                sleep=self._sleep,
            )
        except LLMRetryExhaustedError as exc:
            raise RemoteCallFailure(stage="synthesis", message=str(exc.last_error)) from exc

        logger.debug("Raw synthesis response dataset_id=%s: %s", context.dataset_id, raw)
        final_report = self.parse_report(raw)

        log_event(
            logger,
            logging.INFO,
            "synthesis_completed",
            dataset_id=str(context.dataset_id),
            quality_score=final_report.quality_score,
            fallback=final_report.is_fallback,
        )
        return final_report

    def parse_report(self, raw_response: str) -> FinalReport:
        """
        Parse model output into a FinalReport. Never raises.
        """

        generated_at = self._clock().isoformat()
        try:
            report = self._parse(raw_response)
        except MalformedResponseError as exc:
            logger.warning("Synthesis output could not be parsed: %s", exc)
            return FinalReport.fallback(
                parse_error=str(exc),
                raw_response=exc.raw_response,
                generated_at=generated_at,
                source=self._audit_settings.report_source,
                version=self._audit_settings.report_version,
            )

        report.metadata.generated_at = generated_at
        report.metadata.source = self._audit_settings.report_source
        report.metadata.version = self._audit_settings.report_version
        return report

    @staticmethod
    def _parse(raw_response: str) -> FinalReport:
        try:
            return validate_final_report(raw_response)
        except LLMOutputValidationError as exc:
            raise MalformedResponseError(
                message="; ".join(exc.errors),
                raw_response=raw_response or "",
            ) from exc
