"""
Bounded pool of browser sessions.

Each session is its own Chromium process. The pool enforces a per-owner
session limit and runs three background loops: a memory sampler, a memory
pressure sweep that closes the oldest sessions, and an idle sweep.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from collections import Counter
from typing import Any, Awaitable, Callable

from ..core.exceptions import BrowserOperationError, SessionLimitError, SessionNotFoundError
from .launcher import BrowserLauncher, LaunchOptions
from .session import BrowserSession

logger = logging.getLogger(__name__)

PRESSURE_EVICTION_RATIO = 0.3


class BrowserSessionPool:
    """Owns every browser session in the process."""

    def __init__(
        self,
        launcher: BrowserLauncher,
        *,
        launch_options: LaunchOptions | None = None,
        max_sessions_per_owner: int = 10,
        session_timeout_ms: int = 1_800_000,
        max_memory_per_session_bytes: int = 512 * 1024 * 1024,
        memory_sample_interval_s: float = 10.0,
        memory_check_interval_s: float = 30.0,
        idle_check_interval_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._launcher = launcher
        self.launch_options = launch_options or LaunchOptions()
        self.max_sessions_per_owner = max_sessions_per_owner
        self.session_timeout_ms = session_timeout_ms
        self.max_memory_per_session_bytes = max_memory_per_session_bytes
        self.memory_sample_interval_s = memory_sample_interval_s
        self.memory_check_interval_s = memory_check_interval_s
        self.idle_check_interval_s = idle_check_interval_s
        self._clock = clock
        self._sessions: dict[str, BrowserSession] = {}
        self._pending: Counter[str] = Counter()
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = False

    @classmethod
    def from_settings(cls, launcher: BrowserLauncher, settings: Any) -> BrowserSessionPool:
        return cls(
            launcher,
            launch_options=LaunchOptions(
                headless=settings.browser_headless,
                viewport_width=settings.browser_viewport_width,
                viewport_height=settings.browser_viewport_height,
                max_viewport_width=settings.browser_max_viewport_width,
                max_viewport_height=settings.browser_max_viewport_height,
                navigation_timeout_ms=settings.browser_navigation_timeout_ms,
                default_timeout_ms=settings.browser_navigation_timeout_ms,
            ),
            max_sessions_per_owner=settings.browser_max_sessions_per_owner,
            session_timeout_ms=settings.browser_session_timeout_ms,
            max_memory_per_session_bytes=settings.browser_max_memory_per_session_bytes,
            memory_sample_interval_s=settings.browser_memory_sample_interval_s,
            memory_check_interval_s=settings.browser_memory_check_interval_s,
            idle_check_interval_s=settings.browser_idle_check_interval_s,
        )

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._tasks:
            return
        self._stopping = False
        self._tasks = [
            asyncio.create_task(self._periodic(self.memory_sample_interval_s, self.sample_memory, "memory sampler")),
            asyncio.create_task(self._periodic(self.memory_check_interval_s, self.relieve_memory_pressure, "memory sweep")),
            asyncio.create_task(self._periodic(self.idle_check_interval_s, self.sweep_idle, "idle sweep")),
        ]
        logger.info("Browser session pool started")

    async def stop(self) -> None:
        self._stopping = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.close_all()
        await self._launcher.stop()
        logger.info("Browser session pool stopped")

    async def _periodic(self, interval_s: float, job: Callable[[], Awaitable[Any]], name: str) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                await job()
            except Exception:
                logger.exception("Browser pool %s failed", name)

    # --- Sessions ---

    def owner_session_count(self, owner_id: str) -> int:
        """Open plus launching sessions held by ``owner_id``."""
        active = sum(1 for s in self._sessions.values() if s.owner_id == owner_id)
        return active + self._pending[owner_id]

    async def create_session(self, owner_id: str, options: dict[str, Any] | None = None) -> str:
        """Launch a browser for ``owner_id`` and return the new session id.

        Raises:
            SessionLimitError: If the owner already holds the maximum; no process is started.
        """
        if self._stopping:
            raise BrowserOperationError("Browser pool is stopping")
        # Check and reserve before the first await so concurrent callers see the slot taken
        if self.owner_session_count(owner_id) >= self.max_sessions_per_owner:
            raise SessionLimitError(owner_id, self.max_sessions_per_owner)
        self._pending[owner_id] += 1

        launch_options = self.launch_options.with_overrides(options)
        try:
            handle = await self._launcher.launch(launch_options)
        finally:
            self._pending[owner_id] -= 1
            if self._pending[owner_id] <= 0:
                del self._pending[owner_id]

        session_id = f"session_{uuid.uuid4().hex}"
        session = BrowserSession(
            session_id,
            owner_id,
            handle,
            navigation_timeout_ms=launch_options.navigation_timeout_ms,
            clock=self._clock,
        )
        if self._stopping:
            # stop() ran while the browser was launching
            await session.close()
            raise BrowserOperationError("Browser pool stopped during launch")
        self._sessions[session_id] = session
        logger.info(
            "Browser session created: %s (owner %s, total %d)",
            session_id,
            owner_id,
            len(self._sessions),
        )
        return session_id

    def get(self, session_id: str) -> BrowserSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.touch()
        return session

    def has(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info("Browser session closed: %s", session_id)
        return True

    async def close_all(self) -> int:
        ids = list(self._sessions)
        for session_id in ids:
            await self.close(session_id)
        return len(ids)

    def __len__(self) -> int:
        return len(self._sessions)

    # --- Governance ---

    async def sample_memory(self) -> int:
        """Refresh each session's heap reading and return the total."""
        for session in list(self._sessions.values()):
            try:
                await session.sample_memory()
            except Exception as e:
                # Session may be closing; keep the previous reading
                logger.debug("Memory sample failed for %s: %s", session.id, e)
        return sum(s.memory_usage for s in self._sessions.values())

    async def relieve_memory_pressure(self) -> list[str]:
        """Close the oldest ~30% of sessions when total memory is over budget."""
        count = len(self._sessions)
        if not count:
            return []
        total = sum(s.memory_usage for s in self._sessions.values())
        threshold = self.max_memory_per_session_bytes * count
        if total <= threshold:
            return []

        victims = sorted(self._sessions.values(), key=lambda s: s.created_tick)
        victims = victims[: max(1, math.ceil(count * PRESSURE_EVICTION_RATIO))]
        logger.warning(
            "Browser memory %d bytes over threshold %d, closing %d sessions",
            total,
            threshold,
            len(victims),
        )
        closed = []
        for session in victims:
            if await self.close(session.id):
                closed.append(session.id)
        return closed

    async def sweep_idle(self) -> list[str]:
        """Close sessions unused for longer than the session timeout."""
        idle = [s.id for s in self._sessions.values() if s.idle_ms() > self.session_timeout_ms]
        closed = []
        for session_id in idle:
            if await self.close(session_id):
                logger.info("Closed idle browser session %s", session_id)
                closed.append(session_id)
        return closed

    def stats(self) -> dict[str, Any]:
        by_owner = Counter(s.owner_id for s in self._sessions.values())
        return {
            "totalSessions": len(self._sessions),
            "pendingSessions": sum(self._pending.values()),
            "sessionsByOwner": dict(by_owner),
            "totalMemoryUsage": sum(s.memory_usage for s in self._sessions.values()),
            "maxSessionsPerOwner": self.max_sessions_per_owner,
            "sessions": [s.info() for s in self._sessions.values()],
        }
