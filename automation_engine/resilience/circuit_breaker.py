"""Circuit breaker for calls to a remote dependency."""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from ..core.exceptions import CircuitOpenError
from .backoff import ErrorType, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that say nothing about the dependency's health
IGNORED_ERROR_TYPES = frozenset({ErrorType.AUTHENTICATION, ErrorType.VALIDATION})


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    CLOSED -> OPEN after ``failure_threshold`` consecutive failures.
    OPEN -> HALF_OPEN once ``recovery_timeout_ms`` has elapsed since the last failure.
    HALF_OPEN lets exactly one probe through; its outcome decides the next state.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout_ms: int = 30_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout_ms = recovery_timeout_ms
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``operation`` through the breaker."""
        self._acquire()
        try:
            result = await operation(*args, **kwargs)
        except Exception as e:
            if classify_error(e) in IGNORED_ERROR_TYPES:
                self._probe_in_flight = False
            else:
                self.record_failure()
            raise
        except BaseException:
            # Cancelled probe; let the next call try again
            self._probe_in_flight = False
            raise
        self.record_success()
        return result

    def _acquire(self) -> None:
        # No await in here: check and transition happen atomically
        if self._state is CircuitState.OPEN:
            elapsed_ms = (self._clock() - (self._last_failure_time or 0.0)) * 1000
            if elapsed_ms <= self.recovery_timeout_ms:
                raise CircuitOpenError(self.name, int(self.recovery_timeout_ms - elapsed_ms))
            logger.info("Circuit breaker '%s' half-open, allowing probe", self.name)
            self._state = CircuitState.HALF_OPEN
            self._probe_in_flight = False

        if self._state is CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                raise CircuitOpenError(self.name, 0)
            self._probe_in_flight = True

    def record_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("Circuit breaker '%s' closed", self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._probe_in_flight = False

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()
        was_probe = self._state is CircuitState.HALF_OPEN
        self._probe_in_flight = False

        if was_probe or self._failure_count >= self.failure_threshold:
            if self._state is not CircuitState.OPEN:
                logger.warning(
                    "Circuit breaker '%s' opened after %d failures",
                    self.name,
                    self._failure_count,
                )
            self._state = CircuitState.OPEN

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._probe_in_flight = False

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failureCount": self._failure_count,
            "lastFailureTime": self._last_failure_time,
        }
