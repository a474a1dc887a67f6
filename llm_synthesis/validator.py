"""Validation layer for raw LLM output.

Extracts the JSON payload from a model response (tolerating markdown fences)
and validates synthesis output against the FinalReport schema.
"""

import json
import re
from typing import Any, List

from pydantic import ValidationError

from llm_synthesis.schema import RESERVED_METADATA_KEYS, FinalReport

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


class LLMOutputValidationError(Exception):
    """Raised when LLM output fails parsing or schema validation.

    Attributes:
        stage: Which validation step failed ("json_parse" or "schema").
        errors: List of human-readable error descriptions.
        raw_response: The original string that failed validation.
    """

    def __init__(
        self,
        stage: str,
        errors: List[str],
        raw_response: str,
    ) -> None:
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        message = (
            f"LLM output validation failed at stage '{stage}': "
            + "; ".join(errors)
        )
        super().__init__(message)


def extract_json_text(raw_response: str) -> str:
    """Return the JSON candidate inside a model response.

    The response is trimmed; if it contains a fenced code block (optionally
    tagged ``json``) anywhere, only the fenced content is returned.

    Args:
        raw_response: Raw string returned by the LLM adapter.

    Returns:
        The text that should be handed to ``json.loads``.
    """
    stripped = (raw_response or "").strip()
    match = _FENCED_BLOCK.search(stripped)
    if match and match.group(1):
        return match.group(1).strip()
    return stripped


def parse_json_payload(raw_response: str) -> Any:
    """Extract and decode the JSON value in a model response.

    Raises:
        LLMOutputValidationError: With stage ``json_parse`` on decode failure.
    """
    cleaned = extract_json_text(raw_response)
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as exc:
        raise LLMOutputValidationError(
            stage="json_parse",
            errors=[str(exc)],
            raw_response=raw_response,
        ) from exc


def validate_final_report(raw_response: str) -> FinalReport:
    """Parse and validate a raw synthesis response.

    Steps:
        1. Trim and extract fenced content, if any.
        2. Parse as JSON.
        3. Require a top-level object.
        4. Drop metadata keys the service stamps itself.
        5. Validate against the FinalReport model.

    Any JSON object is accepted except one whose ``qualityScore`` is not a
    number.

    Args:
        raw_response: The raw string returned by the LLM adapter.

    Returns:
        A validated FinalReport instance.

    Raises:
        LLMOutputValidationError: If JSON parsing or schema validation fails.
    """
    data = parse_json_payload(raw_response)

    if not isinstance(data, dict):
        raise LLMOutputValidationError(
            stage="schema",
            errors=["top-level JSON must be an object"],
            raw_response=raw_response,
        )

    metadata = data.get("metadata")
    if isinstance(metadata, dict):
        data["metadata"] = {
            key: value
            for key, value in metadata.items()
            if key not in RESERVED_METADATA_KEYS
        }
    else:
        data["metadata"] = {}

    try:
        return FinalReport.model_validate(data)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}"
            for e in exc.errors()
        ]
        raise LLMOutputValidationError(
            stage="schema",
            errors=errors,
            raw_response=raw_response,
        ) from exc
