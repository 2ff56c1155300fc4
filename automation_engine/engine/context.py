"""Execution-scoped state owned by one in-flight run."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from .types import LogEntry

if TYPE_CHECKING:
    from .types import Step

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

CleanupCallback = Callable[[], Awaitable[None]]


class WorkflowContext:
    """
    Scratch state for a single execution.

    Holds variables, the last result per step, an append-only log and a
    monotonic clock. Never shared between executions.
    """

    def __init__(
        self,
        execution_id: str,
        automation_id: str,
        owner_id: str | None = None,
        data: Any = None,
    ) -> None:
        self.execution_id = execution_id
        self.automation_id = automation_id
        self.owner_id = owner_id or automation_id
        self.data = data
        self.variables: dict[str, Any] = {}
        self.step_results: dict[str, Any] = {}
        self.started_at = datetime.now()
        self._start = time.monotonic()
        self._logs: list[LogEntry] = []
        self._cancelled = asyncio.Event()
        self._cleanups: list[CleanupCallback] = []
        self.current_step: Step | None = None

    # --- Logging ---

    @property
    def logs(self) -> list[LogEntry]:
        return list(self._logs)

    def log(self, level: str, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Append a log entry and forward it to the module logger."""
        entry = LogEntry(
            timestamp=datetime.now(),
            level=level,
            message=message,
            metadata=metadata or {},
        )
        self._logs.append(entry)
        logger.log(
            _LEVELS.get(level, logging.INFO),
            "[%s] %s",
            self.execution_id,
            message,
            extra={"execution_id": self.execution_id, "automation_id": self.automation_id},
        )

    def serialized_logs(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._logs]

    # --- Step results ---

    def set_step_result(self, step_id: str, result: Any) -> None:
        self.step_results[step_id] = result

    def get_step_result(self, step_id: str) -> Any:
        return self.step_results.get(step_id)

    # --- Timing ---

    def duration_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    # --- Cancellation ---

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # --- Cleanup ---

    def add_cleanup(self, callback: CleanupCallback) -> None:
        """Register an async callback to run when the execution ends."""
        self._cleanups.append(callback)

    async def run_cleanups(self) -> None:
        while self._cleanups:
            callback = self._cleanups.pop()
            try:
                await callback()
            except Exception as e:
                # Cleanup must not mask the execution outcome
                self.log("warn", f"Cleanup failed: {e}")
