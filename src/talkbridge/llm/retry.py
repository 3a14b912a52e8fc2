"""
Retry policy with exponential backoff.

The gateway drives its retry loop from explicit :class:`AttemptOutcome`
values instead of exceptions; this module holds the policy pieces: the
configuration, delay calculation, ``Retry-After`` parsing and response
classification.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional

import httpx

from talkbridge.llm.base import AttemptOutcome

logger = logging.getLogger(__name__)

# Validates a parsed payload; returns an error message or None when usable
PayloadValidator = Callable[[Any], Optional[str]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3  # Total attempts per logical call
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    retryable_status_codes: set[int] = field(
        default_factory=lambda: {429, 500, 502, 503, 504}
    )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay before the next attempt using exponential backoff.

    Args:
        attempt: Attempt that just failed (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds (``initial_delay * base ** attempt``, capped)
    """
    delay = config.initial_delay * (config.exponential_base**attempt)
    return min(delay, config.max_delay)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a ``Retry-After`` header.

    Accepts delta-seconds or an HTTP date.

    Returns:
        Non-negative delay in seconds, or None if absent/unparseable
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def extract_error_message(response: httpx.Response) -> str:
    """Pull the API's error message out of an error response."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        text = response.text.strip()
        return text[:500] if text else f"HTTP {response.status_code}"

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        for key in ("message", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


def classify_response(
    response: httpx.Response,
    config: RetryConfig,
    validator: Optional[PayloadValidator] = None,
) -> AttemptOutcome:
    """
    Classify an HTTP response into success, retry or fail.

    - 2xx with a valid JSON payload: success
    - 2xx with invalid JSON or a payload the validator rejects: retry
    - 429 and 5xx: retry (429 carries the Retry-After hint)
    - any other 4xx: fail immediately with the API's message

    Args:
        response: HTTP response
        config: Retry configuration
        validator: Optional payload check

    Returns:
        AttemptOutcome
    """
    status = response.status_code

    if 200 <= status < 300:
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            return AttemptOutcome(
                AttemptOutcome.RETRY, status_code=status, error="Invalid JSON in response"
            )
        problem = validator(data) if validator else None
        if problem:
            return AttemptOutcome(AttemptOutcome.RETRY, status_code=status, error=problem)
        return AttemptOutcome(AttemptOutcome.SUCCESS, data=data, status_code=status)

    message = extract_error_message(response)
    if status == 429:
        return AttemptOutcome(
            AttemptOutcome.RETRY,
            status_code=status,
            error=f"Rate limited: {message}",
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status >= 500 or status in config.retryable_status_codes:
        return AttemptOutcome(
            AttemptOutcome.RETRY, status_code=status, error=f"Server error {status}: {message}"
        )
    return AttemptOutcome(
        AttemptOutcome.FAIL, status_code=status, error=f"API error {status}: {message}"
    )
