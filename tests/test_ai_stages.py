"""
tests/test_ai_stages.py

Tests for prompt selection, the interpretation stage and the synthesis stage,
driven by MockLLMAdapter.

Pure Python: no database, no network.
"""

from __future__ import annotations

import io
import json
import uuid
from datetime import datetime, timezone

import pytest

from app.config import LLMSettings, QualityAuditSettings
from app.domain.quality_audit import DatasetContext, OwnerContext, RemoteCallFailure, TeamContext
from app.services.interpretation_service import InterpretationService, rank_columns
from app.services.report_synthesis_service import ReportSynthesisService
from db.repositories.storage import LocalFileStorage
from llm_synthesis.adapter import LLMTransportError, MockLLMAdapter
from llm_synthesis.prompt_builder import (
    InterpretationPromptBuilder,
    PromptType,
    SynthesisPromptBuilder,
    select_prompt_type,
)
from quality.analyzer import StatisticalAnalyzer
from quality.statistics import ColumnStatistics


FIXED_NOW = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)
SETTINGS = LLMSettings(adapter="mock", max_retries=2, backoff_initial_seconds=0.0)
AUDIT_SETTINGS = QualityAuditSettings(report_source="Quality Audit Tests", report_version="9.9")
SAMPLE_CSV = "region,revenue,notes\nnorth,100,\nsouth,250,\neast,75,\nwest,300,\n"


def _no_sleep(seconds: float) -> None:
    return None


def _report(text: str = SAMPLE_CSV):
    analyzer = StatisticalAnalyzer(LocalFileStorage("unused"))
    return analyzer.analyze_stream(io.BytesIO(text.encode("utf-8")))


def _context(**overrides) -> DatasetContext:
    values = dict(
        dataset_id=uuid.uuid4(),
        dataset_name="Revenue by region",
        dataset_description="Quarterly revenue by sales region",
        original_filename="revenue.csv",
        created_at=FIXED_NOW,
        column_descriptions={"region": "Sales region", "revenue": "Revenue in EUR"},
    )
    values.update(overrides)
    return DatasetContext(**values)


def _column(values: list, name: str = "col") -> ColumnStatistics:
    column = ColumnStatistics(name=name)
    for row_number, value in enumerate(values, start=1):
        column.observe(value, row_number)
    column.finalize(len(values))
    return column


def _interpretation_service(adapter: MockLLMAdapter, **kwargs) -> InterpretationService:
    kwargs.setdefault("max_columns", 5)
    return InterpretationService(adapter, settings=SETTINGS, sleep=_no_sleep, **kwargs)


def _synthesis_service(adapter: MockLLMAdapter) -> ReportSynthesisService:
    return ReportSynthesisService(
        adapter,
        settings=SETTINGS,
        audit_settings=AUDIT_SETTINGS,
        clock=lambda: FIXED_NOW,
        sleep=_no_sleep,
    )


# ---------------------------------------------------------------------------
# Prompt selection
# ---------------------------------------------------------------------------


class TestSelectPromptType:
    def test_inconsistent_dates(self) -> None:
        column = _column([f"2024-01-{day:02d}" for day in range(1, 10)] + ["unknown"])
        assert select_prompt_type(column) == PromptType.DATE_FORMAT_ISSUES

    def test_inconsistent_numeric(self) -> None:
        column = _column([str(n) for n in range(9)] + ["n/a"])
        assert select_prompt_type(column) == PromptType.NUMERIC_ISSUES

    def test_missing_values(self) -> None:
        column = _column([None] * 3 + ["a", "b", "c", "d", "e", "f", "g"])
        assert select_prompt_type(column) == PromptType.MISSING_VALUES

    def test_categorical(self) -> None:
        column = _column(["red", "green", "blue", "red"] * 5)
        assert select_prompt_type(column) == PromptType.CATEGORICAL_ANALYSIS

    def test_general_for_free_text(self) -> None:
        column = _column([f"comment {n}" for n in range(60)])
        assert select_prompt_type(column) == PromptType.GENERAL_COLUMN_ASSESSMENT


class TestPromptBuilders:
    def test_column_prompt_carries_context_and_hints(self) -> None:
        report = _report()
        context = _context(
            owner=OwnerContext(name="Ana", email="ana@example.com", ai_context="Revenue is net of tax"),
            team=TeamContext(name="Finance", ai_context="Regions follow the 2025 map"),
        )

        prompt = InterpretationPromptBuilder().build_column_prompt(
            report.columns["region"], context, report
        )

        assert "Column name: region" in prompt.user
        assert "Column description: Sales region" in prompt.user
        assert "Owner context: Revenue is net of tax" in prompt.user
        assert "Team context (Finance): Regions follow the 2025 map" in prompt.user
        assert "UNIQUE VALUES" in prompt.user
        assert '"north"' in prompt.user

    def test_missing_description_placeholder(self) -> None:
        report = _report()
        prompt = InterpretationPromptBuilder().build_column_prompt(
            report.columns["notes"], _context(), report
        )
        assert "Column description: No description provided" in prompt.user

    def test_synthesis_prompt_pins_keys(self) -> None:
        report = _report()
        prompt = SynthesisPromptBuilder().build_prompt(_context(), report, {"columnInsights": {}})

        assert '"executiveSummary", "qualityScore"' in prompt.user
        assert "Total rows: 4" in prompt.user
        assert prompt.user.endswith("JSON only.")
        assert "markdown" in prompt.system

    def test_findings_summary(self) -> None:
        summary = SynthesisPromptBuilder.summarize_findings(_report())

        assert summary["rowCount"] == 4
        assert [column["name"] for column in summary["columnsWithIssues"]] == ["region", "notes"]


# ---------------------------------------------------------------------------
# Interpretation stage
# ---------------------------------------------------------------------------


class TestInterpretationService:
    def test_ranks_most_severe_columns_first(self) -> None:
        ranked = rank_columns(_report(), limit=5)
        assert [column.name for column in ranked] == ["notes", "region"]

    def test_rank_limit(self) -> None:
        assert [column.name for column in rank_columns(_report(), limit=1)] == ["notes"]

    def test_column_and_overall_insights(self) -> None:
        adapter = MockLLMAdapter(
            [
                json.dumps({"impact": "No commentary available"}),
                "```json\n" + json.dumps({"inconsistencies": []}) + "\n```",
                json.dumps([{"type": "pattern", "title": "Sparse notes"}, "free text"]),
            ]
        )

        output = _interpretation_service(adapter).interpret(_context(), _report())

        assert list(output.column_insights) == ["notes", "region"]
        assert output.column_insights["notes"] == {
            "columnName": "notes",
            "promptType": PromptType.MISSING_VALUES,
            "insights": {"impact": "No commentary available"},
        }
        assert output.column_insights["region"]["promptType"] == PromptType.CATEGORICAL_ANALYSIS
        assert output.overall_insights == [
            {"type": "pattern", "title": "Sparse notes"},
            {"content": "free text"},
        ]
        assert [call["max_tokens"] for call in adapter.calls] == [1000, 1000, 1500]

    def test_unparsable_column_response_is_kept_raw(self) -> None:
        adapter = MockLLMAdapter(["Sorry, I cannot help.", "[]"])

        output = _interpretation_service(adapter, max_columns=1).interpret(_context(), _report())

        assert output.column_insights["notes"]["rawResponse"] == "Sorry, I cannot help."
        assert "insights" not in output.column_insights["notes"]

    def test_unparsable_overall_response(self) -> None:
        adapter = MockLLMAdapter(["not json either"])

        output = _interpretation_service(adapter, max_columns=0).interpret(_context(), _report())

        assert output.column_insights == {}
        assert output.overall_insights == [
            {
                "type": "parsing_error",
                "title": "Error Parsing AI Response",
                "content": "not json either",
                "severity": "medium",
            }
        ]

    def test_overall_object_and_scalar(self) -> None:
        single = _interpretation_service(
            MockLLMAdapter(['{"type": "impact"}']), max_columns=0
        ).interpret(_context(), _report())
        scalar = _interpretation_service(
            MockLLMAdapter(['"Looks fine"']), max_columns=0
        ).interpret(_context(), _report())

        assert single.overall_insights == [{"type": "impact"}]
        assert scalar.overall_insights == [{"type": "general_assessment", "content": "Looks fine"}]

    def test_transport_failure_aborts(self) -> None:
        adapter = MockLLMAdapter([LLMTransportError("connection reset")] * 3)

        with pytest.raises(RemoteCallFailure) as exc_info:
            _interpretation_service(adapter).interpret(_context(), _report())

        assert exc_info.value.stage == "column_interpretation"
        assert len(adapter.calls) == 3

    def test_document_uses_camel_case(self) -> None:
        output = _interpretation_service(MockLLMAdapter(["[]"]), max_columns=0).interpret(
            _context(), _report()
        )
        assert output.to_document() == {"columnInsights": {}, "overallInsights": []}


# ---------------------------------------------------------------------------
# Synthesis stage
# ---------------------------------------------------------------------------


class TestReportSynthesisService:
    def test_valid_response_is_stamped(self) -> None:
        raw = json.dumps(
            {
                "executiveSummary": "Good",
                "qualityScore": 91,
                "scoreExplanation": "Few issues",
                "keyFindings": [],
                "detailedAnalysis": {},
                "recommendations": [],
                "metadata": {"source": "model"},
            }
        )

        report = _synthesis_service(MockLLMAdapter([raw])).synthesize(_context(), _report(), {})

        assert report.quality_score == 91
        assert report.is_fallback is False
        assert report.metadata.generated_at == FIXED_NOW.isoformat()
        assert report.metadata.source == "Quality Audit Tests"
        assert report.metadata.version == "9.9"

    def test_malformed_response_yields_fallback(self) -> None:
        report = _synthesis_service(MockLLMAdapter(["The data is fine."])).synthesize(
            _context(), _report(), {}
        )
        document = report.to_document()

        assert report.is_fallback is True
        assert document["qualityScore"] == 0
        assert document["metadata"]["rawResponse"] == "The data is fine."
        assert document["metadata"]["generatedAt"] == FIXED_NOW.isoformat()

    def test_non_object_response_yields_fallback(self) -> None:
        report = _synthesis_service(MockLLMAdapter(["[1, 2]"])).synthesize(_context(), _report(), {})
        assert report.is_fallback is True

    def test_malformed_response_is_not_retried(self) -> None:
        adapter = MockLLMAdapter(["oops"])
        _synthesis_service(adapter).synthesize(_context(), _report(), {})
        assert len(adapter.calls) == 1

    def test_transport_failure_raises(self) -> None:
        adapter = MockLLMAdapter([LLMTransportError("HTTP 503")] * 3)

        with pytest.raises(RemoteCallFailure) as exc_info:
            _synthesis_service(adapter).synthesize(_context(), _report(), {})

        assert exc_info.value.stage == "synthesis"
        assert "HTTP 503" in str(exc_info.value)

    def test_uses_synthesis_token_limit(self) -> None:
        adapter = MockLLMAdapter()
        _synthesis_service(adapter).synthesize(_context(), _report(), {})
        assert adapter.calls[0]["max_tokens"] == 8000

    def test_numeric_model_metadata_is_overwritten(self) -> None:
        raw = json.dumps(
            {
                "qualityScore": 85,
                "metadata": {"version": 1.0, "generatedAt": 123, "source": None},
            }
        )

        report = _synthesis_service(MockLLMAdapter([raw])).synthesize(_context(), _report(), {})

        assert report.is_fallback is False
        assert report.quality_score == 85
        assert report.metadata.version == "9.9"
        assert report.metadata.generated_at == FIXED_NOW.isoformat()
        assert report.metadata.source == "Quality Audit Tests"

    def test_null_and_odd_sections_are_accepted(self) -> None:
        raw = json.dumps(
            {
                "qualityScore": 70,
                "executiveSummary": None,
                "keyFindings": {"a": 1},
                "recommendations": None,
                "detailedAnalysis": ["see findings"],
            }
        )

        report = _synthesis_service(MockLLMAdapter([raw])).synthesize(_context(), _report(), {})
        document = report.to_document()

        assert report.is_fallback is False
        assert report.quality_score == 70
        assert document["executiveSummary"] == ""
        assert document["keyFindings"] == {"a": 1}
        assert document["recommendations"] == []
        assert document["detailedAnalysis"] == ["see findings"]

    def test_string_score_is_coerced(self) -> None:
        raw = json.dumps({"qualityScore": "64", "executiveSummary": "Usable"})
        report = _synthesis_service(MockLLMAdapter([raw])).synthesize(_context(), _report(), {})
        assert report.quality_score == 64
