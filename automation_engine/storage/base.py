"""Store interfaces the execution core talks to.

Implemented in memory (this package) and on SQLModel (``repositories``).
"""

from __future__ import annotations

from typing import Any, Protocol, TYPE_CHECKING

from ..core.exceptions import InvalidStatusTransitionError
from ..engine.types import ExecutionStatus

if TYPE_CHECKING:
    from ..engine.types import Automation, ExecutionRecord


class AutomationStore(Protocol):
    async def get(self, automation_id: str) -> Automation | None: ...

    async def insert(self, automation: Automation) -> Automation: ...

    async def update(self, automation_id: str, **changes: Any) -> Automation: ...

    async def save_triggers(self, automation_id: str, triggers: dict[str, Any]) -> Automation: ...

    async def list(self, enabled_only: bool = False) -> list[Automation]: ...


class ExecutionStore(Protocol):
    async def get(self, execution_id: str) -> ExecutionRecord | None: ...

    async def insert(self, record: ExecutionRecord) -> ExecutionRecord: ...

    async def update(self, execution_id: str, **fields: Any) -> ExecutionRecord: ...

    async def list(self, automation_id: str | None = None, limit: int = 50) -> list[ExecutionRecord]: ...


class AuditLogStore(Protocol):
    async def insert(self, level: str, message: str, metadata: dict[str, Any]) -> None: ...


def check_transition(execution_id: str, current: ExecutionStatus, requested: ExecutionStatus) -> None:
    """Statuses only move running -> terminal, and only once."""
    if current is requested and not current.is_terminal:
        return
    if current.is_terminal or requested is ExecutionStatus.RUNNING:
        raise InvalidStatusTransitionError(execution_id, current.value, requested.value)
