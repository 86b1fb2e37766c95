"""Shared LLM utility functions for retry, fence-stripping, and JSON parsing.

This module provides:
- _strip_json_fences: Remove markdown code fences from LLM output
- _parse_json_response: Parse JSON from LLM response after stripping fences
- _is_transient_llm_error: Classify provider errors worth retrying
- _invoke_with_retry: Run one provider call under a timeout, retrying transient failures
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import anthropic
import openai
import structlog
from google.genai import errors as genai_errors
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504, 529})

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    anthropic.APIConnectionError,  # includes APITimeoutError
    anthropic.RateLimitError,
    anthropic.InternalServerError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def _strip_json_fences(content: str) -> str:
    """Remove markdown code fences wrapping JSON output."""
    content = content.strip()
    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        if content.endswith("```"):
            content = content[:-3].rstrip()
    return content


def _parse_json_response(content: str) -> dict | list:
    """Parse JSON from LLM response, stripping fences first."""
    return json.loads(_strip_json_fences(content))


def _is_transient_llm_error(exc: BaseException) -> bool:
    """True for rate limits, overloads, timeouts and dropped connections."""
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    if isinstance(exc, anthropic.APIStatusError) and exc.status_code in _RETRYABLE_STATUS:
        return True
    if isinstance(exc, genai_errors.APIError) and exc.code in _RETRYABLE_STATUS:
        return True
    return False


@retry(
    retry=retry_if_exception(_is_transient_llm_error),
    stop=stop_after_attempt(4),
    wait=wait_exponential(multiplier=2, min=2, max=30),
    reraise=True,
    before_sleep=lambda rs: logger.warning(
        "llm_transient_error_retrying",
        attempt=rs.attempt_number,
        error_type=type(rs.outcome.exception()).__name__,
        sleep_seconds=rs.next_action.sleep,
    ),
)
async def _invoke_with_retry(call: Callable[[], Awaitable[Any]], timeout: float) -> Any:
    """Await ``call()`` with a per-attempt timeout, retrying transient failures.

    Retries up to 3 times with exponential backoff (2s, 4s, 8s, max 30s).
    Non-transient exceptions propagate immediately.

    Args:
        call: Zero-arg coroutine factory; invoked once per attempt
        timeout: Seconds allowed for a single attempt

    Returns:
        Whatever ``call()`` returns
    """
    return await asyncio.wait_for(call(), timeout=timeout)
