"""Execution service for business logic."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..core.exceptions import ExecutionNotFoundError

if TYPE_CHECKING:
    from ..engine.types import ExecutionRecord
    from ..runtime import AutomationRuntime


class ExecutionService:
    """Service for execution operations."""

    def __init__(self, runtime: AutomationRuntime) -> None:
        self._store = runtime.execution_store
        self._engine = runtime.engine
        self._retry = runtime.retry

    async def list_executions(self, automation_id: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        """List execution history, newest first."""
        return await self._store.list(automation_id, limit)

    async def get_execution(self, execution_id: str) -> ExecutionRecord:
        execution = await self._store.get(execution_id)
        if not execution:
            raise ExecutionNotFoundError(execution_id)
        return execution

    async def cancel_execution(self, execution_id: str) -> bool:
        """Request cancellation. False when the run already finished."""
        if self._engine.cancel(execution_id):
            return True
        await self.get_execution(execution_id)
        return False

    def retry_status(self, execution_id: str) -> dict[str, Any] | None:
        return self._retry.retry_status(execution_id)
