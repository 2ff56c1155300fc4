"""Call guard for rate-limited remote dependencies.

Order of checks on a read: cache, rate limiter, circuit breaker, call.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from .cache import TTLCache
from .circuit_breaker import CircuitBreaker
from .rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DependencyGuard:
    """Rate limiter, circuit breaker and response cache for one dependency."""

    def __init__(
        self,
        name: str,
        rate_limiter: TokenBucketRateLimiter,
        circuit_breaker: CircuitBreaker,
        cache: TTLCache,
    ) -> None:
        self.name = name
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.cache = cache

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        rate_key: str = "default",
        cache_key: str | None = None,
        ttl_s: int | None = None,
    ) -> T:
        """Run a read through the guard, serving from cache when possible."""
        if cache_key:
            found, value = self.cache.get(cache_key)
            if found:
                logger.debug("Cache hit for %s:%s", self.name, cache_key)
                return value

        self.rate_limiter.consume(rate_key)
        result = await self.circuit_breaker.call(operation)

        if cache_key:
            self.cache.set(cache_key, result, ttl_s)
        return result

    async def mutate(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        rate_key: str = "default",
        invalidate: Iterable[str] = (),
    ) -> T:
        """Run a write (upload/delete) and drop cached reads of the same resource."""
        self.rate_limiter.consume(rate_key)
        result = await self.circuit_breaker.call(operation)
        for key in invalidate:
            self.invalidate(key)
        return result

    def invalidate(self, key: str) -> int:
        """Drop ``key`` and every entry nested under ``key:``."""
        removed = int(self.cache.delete(key))
        removed += self.cache.delete_prefix(f"{key}:")
        return removed

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "circuitBreaker": self.circuit_breaker.stats(),
            "rateLimiter": self.rate_limiter.stats(),
            "cache": {"size": len(self.cache), "hits": self.cache.hits, "misses": self.cache.misses},
        }


class GuardRegistry:
    """One lazily created :class:`DependencyGuard` per dependency name."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout_ms: int = 30_000,
        rate_limit_points: int = 4,
        rate_limit_duration_s: float = 1.0,
        rate_limit_block_duration_s: float = 60.0,
        cache_ttl_s: int = 300,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout_ms = recovery_timeout_ms
        self._rate_limit_points = rate_limit_points
        self._rate_limit_duration_s = rate_limit_duration_s
        self._rate_limit_block_duration_s = rate_limit_block_duration_s
        self._cache_ttl_s = cache_ttl_s
        self._guards: dict[str, DependencyGuard] = {}

    @classmethod
    def from_settings(cls, settings: Any) -> GuardRegistry:
        return cls(
            failure_threshold=settings.breaker_failure_threshold,
            recovery_timeout_ms=settings.breaker_recovery_timeout_ms,
            rate_limit_points=settings.rate_limit_points,
            rate_limit_duration_s=settings.rate_limit_duration_s,
            rate_limit_block_duration_s=settings.rate_limit_block_duration_s,
            cache_ttl_s=settings.cache_default_ttl_s,
        )

    def get(self, name: str) -> DependencyGuard:
        guard = self._guards.get(name)
        if guard is None:
            guard = DependencyGuard(
                name=name,
                rate_limiter=TokenBucketRateLimiter(
                    points=self._rate_limit_points,
                    duration_s=self._rate_limit_duration_s,
                    block_duration_s=self._rate_limit_block_duration_s,
                ),
                circuit_breaker=CircuitBreaker(
                    name=name,
                    failure_threshold=self._failure_threshold,
                    recovery_timeout_ms=self._recovery_timeout_ms,
                ),
                cache=TTLCache(default_ttl_s=self._cache_ttl_s),
            )
            self._guards[name] = guard
        return guard

    def stats(self) -> dict[str, Any]:
        return {name: guard.stats() for name, guard in self._guards.items()}
