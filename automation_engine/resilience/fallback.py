"""Ordered fallback chain: try strategies in order, first success wins."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Generic, TypeVar

from ..core.exceptions import FallbackExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = Callable[[], Awaitable[T]]


class FallbackChain(Generic[T]):
    """A named list of async strategies.

    Strategies run one at a time in registration order. The first one that
    returns wins; if all raise, :class:`FallbackExhaustedError` carries every
    failure.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._strategies: list[tuple[str, Strategy[T]]] = []

    def add(self, label: str, strategy: Strategy[T]) -> FallbackChain[T]:
        self._strategies.append((label, strategy))
        return self

    def __len__(self) -> int:
        return len(self._strategies)

    async def run(self) -> tuple[str, T]:
        """Return ``(label, result)`` of the first strategy that succeeds."""
        if not self._strategies:
            raise ValueError(f"Fallback chain '{self.name}' has no strategies")

        failures: list[tuple[str, BaseException]] = []
        for label, strategy in self._strategies:
            try:
                result = await strategy()
            except Exception as e:
                logger.warning("Strategy '%s' of '%s' failed: %s", label, self.name, e)
                failures.append((label, e))
                continue
            if failures:
                logger.info("'%s' succeeded with fallback strategy '%s'", self.name, label)
            return label, result

        raise FallbackExhaustedError(self.name, failures) from failures[-1][1]
