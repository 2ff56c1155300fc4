"""Automation service for business logic."""

from __future__ import annotations

import logging
import uuid
from typing import Any, TYPE_CHECKING

from ..core.exceptions import (
    AutomationDisabledError,
    AutomationNotFoundError,
    ValidationError,
)
from ..engine.types import Automation, ExecutionResult, Schedule, ValidationReport

if TYPE_CHECKING:
    from ..runtime import AutomationRuntime
    from ..schemas.automation import (
        AutomationCreateRequest,
        AutomationDefinition,
        AutomationUpdateRequest,
        ScheduleSchema,
    )

logger = logging.getLogger(__name__)


class AutomationService:
    """Service for automation operations."""

    def __init__(self, runtime: AutomationRuntime) -> None:
        self._runtime = runtime
        self._store = runtime.automation_store
        self._engine = runtime.engine
        self._scheduler = runtime.scheduler

    async def get_automation(self, automation_id: str) -> Automation:
        automation = await self._store.get(automation_id)
        if automation is None:
            raise AutomationNotFoundError(automation_id)
        return automation

    async def list_automations(self, enabled_only: bool = False) -> list[Automation]:
        return await self._store.list(enabled_only=enabled_only)

    def validate(self, definition: AutomationDefinition) -> ValidationReport:
        """Validate a definition without storing it."""
        data = definition.model_dump(by_alias=True)
        data["id"] = data.get("id") or "draft"
        return self._engine.validate(Automation.from_dict(data))

    def _check(self, automation: Automation) -> None:
        report = self._engine.validate(automation)
        if not report.valid:
            raise ValidationError("Automation validation failed", errors=report.errors)

    async def create_automation(self, request: AutomationCreateRequest) -> Automation:
        """Validate, store and arm a new automation."""
        data = request.model_dump(by_alias=True)
        data["id"] = data.get("id") or f"auto_{uuid.uuid4().hex[:12]}"
        automation = Automation.from_dict(data)
        self._check(automation)

        if await self._store.get(automation.id) is not None:
            raise ValidationError(f"Automation already exists: {automation.id}", field="id")

        automation = await self._store.insert(automation)
        if automation.enabled and automation.schedule and automation.schedule.enabled:
            self._scheduler.schedule(automation.id, automation.schedule)
        self._scheduler.register_triggers(automation)

        logger.info("Created automation %s (%s)", automation.id, automation.name)
        return automation

    async def update_automation(self, automation_id: str, request: AutomationUpdateRequest) -> Automation:
        """Apply changes as a new version and re-arm its schedule."""
        current = await self.get_automation(automation_id)
        changes = request.model_dump(by_alias=True, exclude_unset=True)
        candidate = Automation.from_dict({**current.to_dict(), **changes})
        self._check(candidate)

        fields: dict[str, Any] = {}
        for name in ("name", "description", "owner_id", "enabled", "steps", "retry_config"):
            alias = {"owner_id": "ownerId", "retry_config": "retryConfig"}.get(name, name)
            if alias in changes:
                fields[name] = getattr(candidate, name)

        updated = await self._store.update(automation_id, **fields)
        if updated.enabled:
            self._scheduler.update_schedule(automation_id, updated.schedule)
        else:
            self._scheduler.unschedule(automation_id)
        self._scheduler.unregister_triggers(automation_id)
        self._scheduler.register_triggers(updated)

        logger.info("Updated automation %s to version %d", automation_id, updated.version)
        return updated

    async def run_automation(self, automation_id: str, input_data: dict[str, Any] | None = None) -> ExecutionResult:
        """Run an automation now, waiting for the outcome."""
        automation = await self.get_automation(automation_id)
        if not automation.enabled:
            raise AutomationDisabledError(automation_id)
        return await self._engine.execute(automation, input_data, triggered_by="manual")

    # --- Schedule ---

    async def set_schedule(self, automation_id: str, request: ScheduleSchema) -> dict[str, Any]:
        """Replace the schedule. An invalid cron expression is rejected before anything changes."""
        automation = await self.get_automation(automation_id)
        schedule = Schedule.from_dict(request.model_dump(by_alias=True))
        self._scheduler.validate_cron(schedule.cron_expression, schedule.timezone)

        await self._store.update(automation_id, schedule=schedule)
        self._scheduler.update_schedule(automation_id, schedule if automation.enabled else None)
        return self._scheduler.schedule_status(automation_id)

    async def remove_schedule(self, automation_id: str) -> bool:
        automation = await self.get_automation(automation_id)
        if automation.schedule is not None:
            await self._store.update(automation_id, schedule=None)
        return self._scheduler.unschedule(automation_id)

    def schedule_status(self, automation_id: str) -> dict[str, Any]:
        return self._scheduler.schedule_status(automation_id)

    # --- Webhook ---

    async def enable_webhook(self, automation_id: str) -> str:
        return await self._scheduler.enable_webhook(automation_id)

    async def disable_webhook(self, automation_id: str) -> bool:
        return await self._scheduler.disable_webhook(automation_id)
