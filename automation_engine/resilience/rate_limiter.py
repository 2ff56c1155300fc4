"""Token-bucket rate limiter with a block period once a bucket runs dry."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from ..core.exceptions import RateLimitExceededError


@dataclass
class _Bucket:
    tokens: float
    updated_at: float
    blocked_until: float = 0.0


class TokenBucketRateLimiter:
    """
    ``points`` tokens refill continuously over ``duration_s``.

    A consume against an empty bucket blocks the key for
    ``block_duration_s``; every call during the block is rejected.
    """

    def __init__(
        self,
        points: int = 4,
        duration_s: float = 1.0,
        block_duration_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.points = points
        self.duration_s = duration_s
        self.block_duration_s = block_duration_s
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}

    @property
    def refill_rate(self) -> float:
        return self.points / self.duration_s

    def consume(self, key: str = "default", tokens: float = 1.0) -> float:
        """Take tokens from ``key``'s bucket and return what is left.

        Raises:
            RateLimitExceededError: If the bucket is blocked or empty.
        """
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=float(self.points), updated_at=now)
            self._buckets[key] = bucket

        if bucket.blocked_until > now:
            raise RateLimitExceededError(key, bucket.blocked_until - now)

        elapsed = now - bucket.updated_at
        bucket.tokens = min(float(self.points), bucket.tokens + elapsed * self.refill_rate)
        bucket.updated_at = now

        if bucket.tokens < tokens:
            bucket.blocked_until = now + self.block_duration_s
            raise RateLimitExceededError(key, self.block_duration_s)

        bucket.tokens -= tokens
        return bucket.tokens

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "points": self.points,
            "durationS": self.duration_s,
            "blockDurationS": self.block_duration_s,
            "blockedKeys": [k for k, b in self._buckets.items() if b.blocked_until > now],
            "keys": len(self._buckets),
        }
