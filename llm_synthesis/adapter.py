"""LLM adapters for the interpretation and synthesis stages.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for testing.
"""

import json
import os
from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, List, Optional, Tuple


class LLMTransportError(Exception):
    """Raised when the model endpoint cannot produce a completion.

    Covers connection failures, timeouts and non-2xx API responses. Output
    that arrives but is malformed is NOT a transport error.
    """


class BaseLLMAdapter(ABC):
    """Abstract base for all LLM adapters."""

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Send one system + user prompt pair and return the raw response text.

        Args:
            system_prompt: Instructions that frame the model's role and format.
            user_prompt: The request body, including all dataset context.
            max_tokens: Maximum tokens in the completion.
            temperature: Sampling temperature.

        Returns:
            Raw string response from the model (expected to contain JSON).

        Raises:
            LLMTransportError: If the endpoint call fails.
        """


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Retries are owned by ``llm_synthesis.retry``; the client's built-in
    retries are disabled so attempts are counted in one place.
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            model: Model identifier.
            api_key: OpenAI API key. Falls back to OPENAI_API_KEY env var.
            base_url: Optional base URL for OpenAI-compatible endpoints.
            timeout_seconds: Per-request timeout.
        """
        try:
            import openai  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "openai package is required for OpenAILLMAdapter. "
                "Install it with: pip install openai"
            ) from exc

        resolved_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        client_kwargs: dict = {
            "api_key": resolved_key,
            "timeout": timeout_seconds,
            "max_retries": 0,
        }
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = openai.OpenAI(**client_kwargs)
        self._transport_errors: Tuple[type, ...] = (openai.APIError,)
        self._model = model

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Call the OpenAI chat completion API.

        Returns:
            Raw string content from the model response.
        """
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                stream=False,
            )
        except self._transport_errors as exc:
            raise LLMTransportError(f"{type(exc).__name__}: {exc}") from exc

        if not response.choices:
            raise LLMTransportError("Completion response contained no choices.")
        return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Fixed mock response used for local testing.
# ---------------------------------------------------------------------------
_MOCK_RESPONSE = {
    "executiveSummary": "Mock quality report for testing purposes.",
    "qualityScore": 85,
    "scoreExplanation": "Mock score - no model was called.",
    "keyFindings": [
        {
            "title": "Mock finding",
            "description": "Generated by MockLLMAdapter.",
            "severity": "low",
        }
    ],
    "detailedAnalysis": {"columns": {}},
    "recommendations": [
        {
            "recommendation": "Verify integration with a real model endpoint.",
            "priority": "low",
            "rationale": "This report is a fixture.",
        }
    ],
    "metadata": {},
}

_MOCK_RESPONSE_JSON = json.dumps(_MOCK_RESPONSE, indent=2)


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter for local runs and tests.

    Queued ``responses`` are returned in order; once exhausted every call
    returns ``default_response``. Entries that are exceptions are raised
    instead of returned. Each call is recorded in ``calls``.
    """

    def __init__(
        self,
        responses: Optional[Iterable[object]] = None,
        default_response: str = _MOCK_RESPONSE_JSON,
    ) -> None:
        self._queue = deque(responses or ())
        self._default_response = default_response
        self.calls: List[dict] = []

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if not self._queue:
            return self._default_response
        response = self._queue.popleft()
        if isinstance(response, BaseException):
            raise response
        return str(response)
