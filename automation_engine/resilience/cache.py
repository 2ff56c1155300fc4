"""In-process TTL cache for responses of remote dependencies."""

from __future__ import annotations

import time
from typing import Any, Callable


class TTLCache:
    """Key/value cache where every entry carries its own expiry."""

    def __init__(self, default_ttl_s: int = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl_s = default_ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> tuple[bool, Any]:
        """Return ``(found, value)``; expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return False, None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            self.misses += 1
            return False, None
        self.hits += 1
        return True, value

    def set(self, key: str, value: Any, ttl_s: int | None = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
