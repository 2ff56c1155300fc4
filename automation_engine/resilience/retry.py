"""Retry orchestrator: bounded, backed-off retries around an async operation."""

from __future__ import annotations

import asyncio
import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from ..core.exceptions import ExecutionCancelledError, RetryExhaustedError
from ..engine.types import RetryStrategy
from .backoff import DEFAULT_JITTER, DEFAULT_MAX_DELAY_MS, classify_error, compute_delay, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryInfoSink(Protocol):
    async def update(self, execution_id: str, **fields: Any) -> Any: ...


@dataclass
class RetryContext:
    """Bookkeeping for one execution while retries are in flight."""

    execution_id: str
    max_retries: int
    strategy: RetryStrategy
    attempts: int = 0
    history: list[dict[str, Any]] = field(default_factory=list)
    last_error: str | None = None
    next_attempt: datetime | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "maxRetries": self.max_retries,
            "strategy": self.strategy.value,
            "retryHistory": list(self.history),
            "lastError": self.last_error,
            "nextAttempt": self.next_attempt.isoformat() if self.next_attempt else None,
        }


class RetryOrchestrator:
    """
    Runs an operation up to ``max_retries + 1`` times.

    Non-retryable failures (authentication, validation, cancellation) end the
    loop at once. Retry progress is written to the execution store after every
    failed attempt so observers see it live.
    """

    def __init__(
        self,
        execution_store: RetryInfoSink | None = None,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
        jitter: float = DEFAULT_JITTER,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._execution_store = execution_store
        self.max_delay_ms = max_delay_ms
        self.jitter = jitter
        self._sleep = sleep
        self._rng = rng
        self._active: dict[str, RetryContext] = {}

    async def execute_with_retry(
        self,
        operation: Callable[[int], Awaitable[T]],
        *,
        execution_id: str,
        max_retries: int = 3,
        strategy: RetryStrategy | str = RetryStrategy.EXPONENTIAL,
        base_delay_ms: int = 1000,
    ) -> T:
        """Call ``operation(attempt)`` until it succeeds or retries run out.

        Raises:
            ExecutionCancelledError: If cancelled between attempts.
            RetryExhaustedError: After the last failed attempt, chained to its error.
        """
        ctx = RetryContext(
            execution_id=execution_id,
            max_retries=max_retries,
            strategy=RetryStrategy(strategy),
        )
        self._active[execution_id] = ctx

        try:
            while True:
                if ctx.cancelled:
                    raise ExecutionCancelledError(execution_id)

                ctx.attempts += 1
                try:
                    result = await operation(ctx.attempts)
                except ExecutionCancelledError:
                    raise
                except Exception as e:
                    delay_ms = await self._record_failure(ctx, e, base_delay_ms)
                    if delay_ms is None:
                        raise RetryExhaustedError(ctx.attempts, e, list(ctx.history)) from e
                    logger.info(
                        "Retrying execution %s in %dms (attempt %d/%d)",
                        execution_id,
                        delay_ms,
                        ctx.attempts + 1,
                        max_retries + 1,
                    )
                    await self._backoff(ctx, delay_ms / 1000)
                    continue

                if ctx.attempts > 1:
                    logger.info("Execution %s succeeded on attempt %d", execution_id, ctx.attempts)
                return result
        finally:
            self._active.pop(execution_id, None)

    async def _backoff(self, ctx: RetryContext, seconds: float) -> None:
        """Wait out the delay, returning early if the execution is cancelled."""
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(ctx.cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)

    async def _record_failure(self, ctx: RetryContext, error: Exception, base_delay_ms: int) -> int | None:
        """Append the attempt to history and return the next delay, or None to stop."""
        error_type = classify_error(error)
        retryable = is_retryable(error, error_type)
        has_more = ctx.attempts <= ctx.max_retries

        delay_ms: int | None = None
        if retryable and has_more:
            delay_ms = compute_delay(
                ctx.attempts,
                ctx.strategy,
                base_delay_ms,
                self.max_delay_ms,
                self.jitter,
                self._rng,
            )

        now = datetime.now()
        ctx.last_error = str(error)
        ctx.next_attempt = now + timedelta(milliseconds=delay_ms) if delay_ms is not None else None
        ctx.history.append({
            "attempt": ctx.attempts,
            "error": str(error),
            "errorType": error_type.value,
            "retryable": retryable,
            "timestamp": now.isoformat(),
            "delayMs": delay_ms,
        })

        if not retryable:
            logger.warning("Non-retryable %s error on %s: %s", error_type.value, ctx.execution_id, error)

        await self._persist(ctx)
        return delay_ms

    async def _persist(self, ctx: RetryContext) -> None:
        if self._execution_store is None:
            return
        try:
            await self._execution_store.update(ctx.execution_id, retry_info=ctx.to_dict())
        except Exception as e:
            logger.warning("Failed to persist retry progress for %s: %s", ctx.execution_id, e)

    # --- Introspection ---

    def cancel_retry(self, execution_id: str) -> bool:
        ctx = self._active.get(execution_id)
        if ctx is None:
            return False
        ctx.cancel_event.set()
        return True

    def retry_status(self, execution_id: str) -> dict[str, Any] | None:
        ctx = self._active.get(execution_id)
        return ctx.to_dict() if ctx else None

    def stats(self) -> dict[str, Any]:
        by_strategy = Counter(ctx.strategy.value for ctx in self._active.values())
        return {"activeRetries": len(self._active), "byStrategy": dict(by_strategy)}
