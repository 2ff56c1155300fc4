"""In-memory automation storage."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, TYPE_CHECKING

from ..core.exceptions import AutomationNotFoundError

if TYPE_CHECKING:
    from ..engine.types import Automation


class InMemoryAutomationStore:
    """Automations keyed by id. Every update stores a new version."""

    def __init__(self) -> None:
        self._automations: dict[str, Automation] = {}

    async def get(self, automation_id: str) -> Automation | None:
        return self._automations.get(automation_id)

    async def insert(self, automation: Automation) -> Automation:
        self._automations[automation.id] = automation
        return automation

    async def update(self, automation_id: str, **changes: Any) -> Automation:
        current = self._automations.get(automation_id)
        if current is None:
            raise AutomationNotFoundError(automation_id)
        changes.pop("version", None)
        updated = replace(
            current,
            **changes,
            version=current.version + 1,
            updated_at=datetime.now(),
        )
        self._automations[automation_id] = updated
        return updated

    async def save_triggers(self, automation_id: str, triggers: dict[str, Any]) -> Automation:
        """Persist trigger bindings (tokens) without bumping the version."""
        current = self._automations.get(automation_id)
        if current is None:
            raise AutomationNotFoundError(automation_id)
        updated = replace(current, triggers=dict(triggers))
        self._automations[automation_id] = updated
        return updated

    async def list(self, enabled_only: bool = False) -> list[Automation]:
        return [a for a in self._automations.values() if a.enabled or not enabled_only]
