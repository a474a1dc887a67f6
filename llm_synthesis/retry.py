"""Retry logic for LLM transport errors.

Retries only on ``LLMTransportError`` with exponential backoff. Output that
arrives but fails parsing is handed back to the caller unchanged: each stage
decides how to recover from malformed JSON.
"""

import logging
import time
from typing import Callable, List

from llm_synthesis.adapter import BaseLLMAdapter, LLMTransportError

logger = logging.getLogger(__name__)


class LLMRetryExhaustedError(Exception):
    """Raised when every attempt failed at the transport level.

    Attributes:
        attempts: Total number of attempts made (initial + retries).
        last_error: The transport error from the final attempt.
        history: Transport errors from every failed attempt.
    """

    def __init__(
        self,
        attempts: int,
        last_error: LLMTransportError,
        history: List[LLMTransportError],
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.history = history
        super().__init__(
            f"LLM call failed after {attempts} attempt(s). "
            f"Last error: {last_error}"
        )


def complete_with_retry(
    adapter: BaseLLMAdapter,
    *,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    temperature: float,
    max_retries: int = 2,
    backoff_initial_seconds: float = 1.0,
    backoff_multiplier: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Call ``adapter.complete()`` with retry on transport errors.

    Args:
        adapter: An LLM adapter implementing ``complete(...) -> str``.
        system_prompt: System prompt for the call.
        user_prompt: User prompt for the call.
        max_tokens: Completion token limit.
        temperature: Sampling temperature.
        max_retries: Maximum number of *additional* attempts after the
            first failure. Total attempts = 1 + max_retries.
        backoff_initial_seconds: Delay before the first retry.
        backoff_multiplier: Factor applied to the delay after each retry.
        sleep: Injected for tests.

    Returns:
        The raw response text of the first successful attempt.

    Raises:
        LLMRetryExhaustedError: If all attempts fail with transport errors.
    """
    errors: List[LLMTransportError] = []
    total_attempts = 1 + max(0, max_retries)
    delay = max(0.0, backoff_initial_seconds)

    for attempt in range(1, total_attempts + 1):
        try:
            raw = adapter.complete(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except LLMTransportError as exc:
            errors.append(exc)
            logger.warning(
                "LLM attempt %d/%d failed: %s",
                attempt,
                total_attempts,
                exc,
            )
            if attempt < total_attempts:
                sleep(delay)
                delay *= backoff_multiplier
            continue

        if attempt > 1:
            logger.info(
                "LLM call succeeded on attempt %d/%d",
                attempt,
                total_attempts,
            )
        return raw

    raise LLMRetryExhaustedError(
        attempts=total_attempts,
        last_error=errors[-1],
        history=errors,
    )
