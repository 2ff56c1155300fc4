"""Failure handling: classification, backoff, retries and dependency guards."""

from .backoff import ErrorType, classify_error, compute_delay, ideal_delay, is_retryable
from .cache import TTLCache
from .circuit_breaker import CircuitBreaker, CircuitState
from .error_classifier import (
    ErrorAnalysis,
    ErrorCategory,
    ErrorClassifier,
    ErrorProfile,
    ErrorSeverity,
)
from .fallback import FallbackChain
from .guard import DependencyGuard, GuardRegistry
from .rate_limiter import TokenBucketRateLimiter
from .retry import RetryContext, RetryOrchestrator

__all__ = [
    "ErrorType",
    "classify_error",
    "compute_delay",
    "ideal_delay",
    "is_retryable",
    "TTLCache",
    "CircuitBreaker",
    "CircuitState",
    "ErrorAnalysis",
    "ErrorCategory",
    "ErrorClassifier",
    "ErrorProfile",
    "ErrorSeverity",
    "FallbackChain",
    "DependencyGuard",
    "GuardRegistry",
    "TokenBucketRateLimiter",
    "RetryContext",
    "RetryOrchestrator",
]
