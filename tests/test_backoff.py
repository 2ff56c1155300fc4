"""Tests for backoff delays and retryability decisions."""

import httpx
import pytest

from automation_engine.core.exceptions import (
    BrowserCrashedError,
    RateLimitExceededError,
    StepExecutionError,
    ValidationError,
)
from automation_engine.engine.types import RetryStrategy
from automation_engine.resilience.backoff import (
    ErrorType,
    classify_error,
    compute_delay,
    ideal_delay,
    is_retryable,
)


class TestIdealDelay:
    def test_exponential_doubles(self):
        assert [ideal_delay(n, "exponential", 1000) for n in (1, 2, 3)] == [1000, 2000, 4000]

    def test_linear_grows_by_base(self):
        assert [ideal_delay(n, RetryStrategy.LINEAR, 500) for n in (1, 2, 3)] == [500, 1000, 1500]

    def test_fixed_and_immediate(self):
        assert ideal_delay(4, "fixed", 750) == 750
        assert ideal_delay(4, "immediate", 750) == 0

    def test_capped_at_max_delay(self):
        assert ideal_delay(20, "exponential", 1000, max_delay_ms=300_000) == 300_000


class TestComputeDelay:
    def test_jitter_is_symmetric(self):
        assert compute_delay(1, "fixed", 1000, jitter=0.1, rng=lambda: 0.0) == 900
        assert compute_delay(1, "fixed", 1000, jitter=0.1, rng=lambda: 1.0) == 1100
        assert compute_delay(1, "fixed", 1000, jitter=0.1, rng=lambda: 0.5) == 1000

    def test_jitter_never_exceeds_max(self):
        assert compute_delay(30, "exponential", 1000, max_delay_ms=5000, rng=lambda: 1.0) == 5000

    def test_immediate_has_no_jitter(self):
        assert compute_delay(3, "immediate", 1000, rng=lambda: 1.0) == 0


class TestClassifyError:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (ConnectionError("connection reset"), ErrorType.NETWORK),
            (TimeoutError("slow"), ErrorType.TIMEOUT),
            (Exception("Request timeout after 30s"), ErrorType.TIMEOUT),
            (Exception("401 Unauthorized"), ErrorType.AUTHENTICATION),
            (Exception("Validation failed: missing field"), ErrorType.VALIDATION),
            (Exception("Too many requests"), ErrorType.RESOURCE_LIMIT),
            (BrowserCrashedError("session_1", "click"), ErrorType.AUTOMATION),
            (Exception("something odd"), ErrorType.UNKNOWN),
            (ConnectionError("unauthorized"), ErrorType.AUTHENTICATION),
            (TimeoutError("Invalid credentials supplied"), ErrorType.AUTHENTICATION),
            (ConnectionError("validation failed for payload"), ErrorType.VALIDATION),
        ],
    )
    def test_classification(self, error, expected):
        assert classify_error(error) is expected

    def test_http_status_errors(self):
        request = httpx.Request("GET", "https://api.example.com")
        for status, expected in ((401, ErrorType.AUTHENTICATION), (429, ErrorType.RESOURCE_LIMIT), (503, ErrorType.NETWORK)):
            response = httpx.Response(status, request=request)
            error = httpx.HTTPStatusError("boom", request=request, response=response)
            assert classify_error(error) is expected


class TestIsRetryable:
    def test_network_errors_are_retryable(self):
        assert is_retryable(ConnectionError("connection refused"))

    def test_validation_and_auth_are_not(self):
        assert not is_retryable(ValidationError("bad input"))
        assert not is_retryable(Exception("Forbidden"))

    def test_auth_wording_outranks_network_type(self):
        assert not is_retryable(ConnectionError("unauthorized"))
        assert not is_retryable(TimeoutError("403 Forbidden"))

    def test_explicit_hint_wins(self):
        assert not is_retryable(StepExecutionError("network down", retryable=False))
        assert is_retryable(RateLimitExceededError("owner", 1.0))

    def test_unknown_errors_are_not_retried(self):
        assert not is_retryable(Exception("something odd"))

    def test_retryable_message_pattern(self):
        assert is_retryable(Exception("Service unavailable"))
