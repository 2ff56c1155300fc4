"""
Pure backoff and retryability functions.

These answer three questions for the retry orchestrator: what kind of failure
is this, is it worth another attempt, and how long to wait before it.
"""

from __future__ import annotations

import random
import re
from enum import Enum
from typing import Callable

import httpx

from ..core.exceptions import (
    AutomationEngineError,
    BrowserCrashedError,
    CircuitOpenError,
    RateLimitExceededError,
    SessionLimitError,
    ValidationError,
)
from ..engine.types import RetryStrategy

DEFAULT_MAX_DELAY_MS = 300_000
DEFAULT_JITTER = 0.1


class ErrorType(str, Enum):
    """Coarse failure kinds recorded in retry history."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    RESOURCE_LIMIT = "resource_limit"
    AUTOMATION = "automation"
    UNKNOWN = "unknown"


RETRYABLE_TYPES = frozenset(
    {ErrorType.NETWORK, ErrorType.TIMEOUT, ErrorType.RESOURCE_LIMIT, ErrorType.AUTOMATION}
)
NON_RETRYABLE_TYPES = frozenset({ErrorType.AUTHENTICATION, ErrorType.VALIDATION})

RETRYABLE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"network timeout",
        r"connection reset",
        r"connection refused",
        r"service unavailable",
        r"rate limit",
        r"too many requests",
        r"temporary failure",
        r"econnreset",
        r"enotfound",
        r"etimedout",
    )
]

NON_RETRYABLE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"invalid.*credentials",
        r"unauthorized",
        r"forbidden",
        r"not found",
        r"invalid.*token",
        r"validation.*failed",
        r"invalid.*input",
    )
]


def _is_auth_message(message: str) -> bool:
    return "unauthorized" in message or "forbidden" in message or ("invalid" in message and "credential" in message)


def _is_validation_message(message: str) -> bool:
    return "validation" in message or "invalid input" in message


def classify_error(error: BaseException) -> ErrorType:
    """Map an exception to an :class:`ErrorType`.

    Unambiguous exception types are checked first. Authentication and
    validation wording in the message outranks the generic network and
    timeout types, so ``ConnectionError("unauthorized")`` is not retried.
    """
    if isinstance(error, BrowserCrashedError):
        return ErrorType.AUTOMATION
    if isinstance(error, (RateLimitExceededError, SessionLimitError, CircuitOpenError)):
        return ErrorType.RESOURCE_LIMIT
    if isinstance(error, ValidationError):
        return ErrorType.VALIDATION
    if isinstance(error, PermissionError):
        return ErrorType.AUTHENTICATION
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in (401, 403):
            return ErrorType.AUTHENTICATION
        if status == 429:
            return ErrorType.RESOURCE_LIMIT
        if status >= 500:
            return ErrorType.NETWORK
        return ErrorType.VALIDATION

    message = str(error).lower()

    if _is_auth_message(message):
        return ErrorType.AUTHENTICATION
    if _is_validation_message(message):
        return ErrorType.VALIDATION
    if isinstance(error, (TimeoutError, httpx.TimeoutException)):
        return ErrorType.TIMEOUT
    if isinstance(error, (ConnectionError, httpx.NetworkError)):
        return ErrorType.NETWORK

    if any(k in message for k in ("network", "connection", "econnreset", "enotfound")):
        return ErrorType.NETWORK
    if "timeout" in message or "etimedout" in message:
        return ErrorType.TIMEOUT
    if any(k in message for k in ("rate limit", "too many requests", "quota exceeded")):
        return ErrorType.RESOURCE_LIMIT
    return ErrorType.UNKNOWN


def is_retryable(error: BaseException, error_type: ErrorType | None = None) -> bool:
    """Decide whether another attempt could succeed."""
    if isinstance(error, AutomationEngineError) and error.retryable is not None:
        return error.retryable

    error_type = error_type or classify_error(error)
    if error_type in NON_RETRYABLE_TYPES:
        return False
    if error_type in RETRYABLE_TYPES:
        return True

    message = str(error)
    if any(p.search(message) for p in NON_RETRYABLE_PATTERNS):
        return False
    if any(p.search(message) for p in RETRYABLE_PATTERNS):
        return True

    # Unknown errors are not retried
    return False


def ideal_delay(
    attempt: int,
    strategy: RetryStrategy | str,
    base_delay_ms: int,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
) -> int:
    """Pre-jitter delay before the attempt after ``attempt`` (1-based) failed."""
    strategy = RetryStrategy(strategy)
    attempt = max(1, attempt)

    if strategy is RetryStrategy.IMMEDIATE:
        delay = 0
    elif strategy is RetryStrategy.FIXED:
        delay = base_delay_ms
    elif strategy is RetryStrategy.LINEAR:
        delay = base_delay_ms * attempt
    else:
        delay = base_delay_ms * 2 ** (attempt - 1)

    return min(delay, max_delay_ms)


def compute_delay(
    attempt: int,
    strategy: RetryStrategy | str,
    base_delay_ms: int,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    jitter: float = DEFAULT_JITTER,
    rng: Callable[[], float] = random.random,
) -> int:
    """Delay with symmetric jitter applied, capped at ``max_delay_ms``."""
    delay = ideal_delay(attempt, strategy, base_delay_ms, max_delay_ms)
    if delay <= 0:
        return 0
    jittered = delay * (1 + jitter * (2 * rng() - 1))
    return max(0, min(round(jittered), max_delay_ms))
