"""In-memory execution record storage."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, TYPE_CHECKING

from ..core.exceptions import ExecutionNotFoundError
from ..engine.types import ExecutionStatus
from .base import check_transition

if TYPE_CHECKING:
    from ..engine.types import ExecutionRecord


class InMemoryExecutionStore:
    """Execution records held in a dict. Records are never evicted."""

    def __init__(self) -> None:
        self._executions: dict[str, ExecutionRecord] = {}

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        return self._executions.get(execution_id)

    async def insert(self, record: ExecutionRecord) -> ExecutionRecord:
        self._executions[record.id] = record
        return record

    async def update(self, execution_id: str, **fields: Any) -> ExecutionRecord:
        """Apply field changes, refusing any backwards status move."""
        record = self._executions.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)

        if "status" in fields:
            fields["status"] = ExecutionStatus(fields["status"])
            check_transition(execution_id, record.status, fields["status"])

        updated = replace(record, **fields)
        self._executions[execution_id] = updated
        return updated

    async def list(self, automation_id: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        records = [
            r for r in self._executions.values()
            if automation_id is None or r.automation_id == automation_id
        ]
        records.sort(key=lambda r: r.started_at, reverse=True)
        return records[:limit]
