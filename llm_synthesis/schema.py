"""Structured output schemas for the interpretation and synthesis stages.

Wire format uses camelCase keys (what the model is asked to produce and what
clients read back); attributes are snake_case.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

FINAL_REPORT_KEYS = (
    "executiveSummary",
    "qualityScore",
    "scoreExplanation",
    "keyFindings",
    "detailedAnalysis",
    "recommendations",
    "metadata",
)

# Metadata keys owned by the service: stamped after parsing, or set only on
# the fallback report. Whatever the model puts there is discarded.
RESERVED_METADATA_KEYS = frozenset(
    {
        "generatedAt",
        "generated_at",
        "source",
        "version",
        "error",
        "rawResponse",
        "raw_response",
    }
)


class ReportMetadata(BaseModel):
    """Audit metadata block. ``error``/``raw_response`` are only set on fallback."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    generated_at: Optional[str] = Field(default=None, alias="generatedAt")
    source: Optional[str] = None
    version: Optional[str] = None
    error: Optional[bool] = None
    raw_response: Optional[str] = Field(default=None, alias="rawResponse")


class FinalReport(BaseModel):
    """Client-facing quality report produced by the synthesis stage.

    Sections are stored as the model wrote them, whatever their JSON type;
    only ``qualityScore`` must be numeric. A null section takes its empty
    default. Unknown keys supplied by the model are preserved.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    executive_summary: Any = Field(default="", alias="executiveSummary")
    quality_score: Optional[int | float] = Field(default=None, alias="qualityScore")
    score_explanation: Any = Field(default="", alias="scoreExplanation")
    key_findings: Any = Field(default_factory=list, alias="keyFindings")
    detailed_analysis: Any = Field(default_factory=dict, alias="detailedAnalysis")
    recommendations: Any = Field(default_factory=list)
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)

    @field_validator("executive_summary", "score_explanation", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("key_findings", "recommendations", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("detailed_analysis", mode="before")
    @classmethod
    def _null_mapping(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("quality_score")
    @classmethod
    def _clamp_score(cls, value: Optional[int | float]) -> Optional[int | float]:
        if value is None:
            return None
        return min(100, max(0, value))

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.error)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the JSON document persisted on the dataset."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    @classmethod
    def fallback(
        cls,
        *,
        parse_error: str,
        raw_response: str,
        generated_at: str,
        source: str,
        version: str,
    ) -> "FinalReport":
        """Deterministic report used when the model output cannot be parsed."""
        return cls(
            executive_summary=(
                "Error parsing the AI-generated report. The raw content is included "
                "in the report metadata."
            ),
            quality_score=0,
            score_explanation="Could not determine due to parsing error.",
            key_findings=[
                {
                    "issue": "AI Report Generation Error",
                    "impact": "Unable to properly structure the quality audit results.",
                }
            ],
            detailed_analysis={
                "errors": [
                    {
                        "title": "JSON Parsing Error",
                        "description": parse_error,
                    }
                ]
            },
            recommendations=[
                {
                    "recommendation": "Review the raw report content manually or contact support.",
                    "priority": "high",
                    "rationale": "The AI generated output that could not be parsed as a report.",
                }
            ],
            metadata=ReportMetadata(
                generated_at=generated_at,
                source=source,
                version=version,
                error=True,
                raw_response=raw_response,
            ),
        )


class InterpretationOutput(BaseModel):
    """Semantic commentary keyed by column, plus dataset-wide insights."""

    model_config = ConfigDict(populate_by_name=True)

    column_insights: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="columnInsights")
    overall_insights: list[dict[str, Any]] = Field(default_factory=list, alias="overallInsights")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
