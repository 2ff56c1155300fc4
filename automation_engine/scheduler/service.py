"""
Scheduler: cron timers and webhook routing for automations.

Cron jobs run on an APScheduler ``AsyncIOScheduler``. Webhook tokens map to
automation ids in memory and are persisted on the automation's triggers.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..core.exceptions import AutomationNotFoundError, InvalidCronExpressionError
from ..engine.types import ExecutionResult, Schedule
from .cron import build_trigger, next_fire_times

if TYPE_CHECKING:
    from ..engine.types import Automation
    from ..engine.workflow_engine import WorkflowEngine
    from ..storage.base import AutomationStore

logger = logging.getLogger(__name__)

INVALID_TOKEN = "Invalid webhook token"
WATCHED_TRIGGERS = ("fileSystem", "database", "api")


def job_id(automation_id: str) -> str:
    return f"automation:{automation_id}"


class Scheduler:
    """Arms cron jobs and routes webhook tokens to the workflow engine."""

    def __init__(
        self,
        engine: WorkflowEngine,
        automation_store: AutomationStore,
        *,
        timezone: str = "UTC",
        max_overlapping_runs: int = 10,
        token_bytes: int = 32,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._engine = engine
        self._store = automation_store
        self.timezone = timezone
        self.max_overlapping_runs = max_overlapping_runs
        self._token_bytes = token_bytes
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._schedules: dict[str, Schedule] = {}
        self._webhooks: dict[str, str] = {}
        self._watchers: dict[str, dict[str, Any]] = {}

    @property
    def running(self) -> bool:
        return self._scheduler.running

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start the timer layer and load persisted schedules and triggers."""
        if not self._scheduler.running:
            self._scheduler.start()

        # Tokens of disabled automations stay routed so callers get a conflict, not an unknown token
        for automation in await self._store.list():
            if automation.enabled and automation.schedule and automation.schedule.enabled:
                try:
                    self.schedule(automation.id, automation.schedule)
                except InvalidCronExpressionError as e:
                    logger.error("Skipping schedule of automation %s: %s", automation.id, e.message)
            self.register_triggers(automation)

        logger.info(
            "Scheduler started with %d schedules and %d webhooks",
            len(self._schedules),
            len(self._webhooks),
        )

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._schedules.clear()
        self._webhooks.clear()
        self._watchers.clear()
        logger.info("Scheduler stopped")

    # --- Cron ---

    def validate_cron(self, expression: str, timezone: str | None = None) -> None:
        build_trigger(expression, timezone or self.timezone)

    def next_fire_times(self, expression: str, count: int = 5, timezone: str | None = None) -> list[datetime]:
        return next_fire_times(expression, count, timezone or self.timezone)

    def schedule(self, automation_id: str, schedule: Schedule) -> datetime | None:
        """Arm (or re-arm) the cron job of an automation.

        Raises:
            InvalidCronExpressionError: Before anything reaches the timer layer.
        """
        trigger = build_trigger(schedule.cron_expression, schedule.timezone or self.timezone)
        if not schedule.enabled:
            self.unschedule(automation_id)
            return None

        self._scheduler.add_job(
            self._fire,
            trigger=trigger,
            args=[automation_id],
            id=job_id(automation_id),
            name=f"Automation {automation_id}",
            replace_existing=True,
            max_instances=self.max_overlapping_runs if schedule.allow_overlap else 1,
            coalesce=False,
        )
        self._schedules[automation_id] = schedule
        next_run = self._next_run(automation_id)
        logger.info(
            "Scheduled automation %s with '%s' (%s), next run %s",
            automation_id,
            schedule.cron_expression,
            schedule.timezone or self.timezone,
            next_run,
        )
        return next_run

    def unschedule(self, automation_id: str) -> bool:
        self._schedules.pop(automation_id, None)
        try:
            self._scheduler.remove_job(job_id(automation_id))
        except JobLookupError:
            return False
        logger.info("Unscheduled automation %s", automation_id)
        return True

    def update_schedule(self, automation_id: str, schedule: Schedule | None) -> datetime | None:
        """Replace an automation's live timer; ``None`` removes it."""
        if schedule is None or not schedule.enabled:
            if schedule is not None:
                build_trigger(schedule.cron_expression, schedule.timezone or self.timezone)
            self.unschedule(automation_id)
            return None
        return self.schedule(automation_id, schedule)

    async def _fire(self, automation_id: str) -> ExecutionResult | None:
        """Timer callback: reload the automation and run it."""
        automation = await self._store.get(automation_id)
        if automation is None:
            logger.warning("Scheduled automation %s no longer exists, unscheduling", automation_id)
            self.unschedule(automation_id)
            return None
        if not automation.enabled:
            logger.info("Skipping scheduled run of disabled automation %s", automation_id)
            return None

        input_data = dict(automation.schedule.input_data) if automation.schedule else {}
        input_data["trigger"] = {"type": "scheduled", "firedAt": datetime.now().isoformat()}
        try:
            result = await self._engine.execute(automation, input_data, triggered_by="scheduled")
        except Exception:
            logger.exception("Scheduled run of automation %s failed to start", automation_id)
            return None

        logger.info(
            "Scheduled run %s of automation %s finished: %s",
            result.execution_id,
            automation_id,
            result.status.value if result.status else "rejected",
        )
        return result

    def _next_run(self, automation_id: str) -> datetime | None:
        job = self._scheduler.get_job(job_id(automation_id))
        if job is None:
            return None
        # Jobs added before start() have no next_run_time yet
        next_run = getattr(job, "next_run_time", None)
        if next_run is None:
            schedule = self._schedules.get(automation_id)
            if schedule is None:
                return None
            upcoming = next_fire_times(schedule.cron_expression, 1, schedule.timezone or self.timezone)
            next_run = upcoming[0] if upcoming else None
        return next_run

    def schedule_status(self, automation_id: str) -> dict[str, Any]:
        schedule = self._schedules.get(automation_id)
        next_run = self._next_run(automation_id) if schedule else None
        return {
            "automationId": automation_id,
            "scheduled": schedule is not None,
            "cronExpression": schedule.cron_expression if schedule else None,
            "timezone": (schedule.timezone or self.timezone) if schedule else None,
            "allowOverlap": schedule.allow_overlap if schedule else None,
            "nextRun": next_run.isoformat() if next_run else None,
        }

    def all_schedule_status(self) -> list[dict[str, Any]]:
        return [self.schedule_status(automation_id) for automation_id in self._schedules]

    # --- Triggers ---

    def register_triggers(self, automation: Automation) -> None:
        """Route an automation's enabled webhook and note unsupported watchers."""
        webhook = automation.webhook_trigger
        if webhook and webhook.get("enabled") and webhook.get("token"):
            self._webhooks[webhook["token"]] = automation.id

        if not automation.enabled:
            return
        for kind in WATCHED_TRIGGERS:
            config = automation.triggers.get(kind)
            if isinstance(config, dict) and config.get("enabled"):
                self._watchers.setdefault(automation.id, {})[kind] = config
                logger.warning(
                    "%s trigger of automation %s is recorded but not watched",
                    kind,
                    automation.id,
                )

    def unregister_triggers(self, automation_id: str) -> None:
        for token in [t for t, a in self._webhooks.items() if a == automation_id]:
            del self._webhooks[token]
        self._watchers.pop(automation_id, None)

    async def enable_webhook(self, automation_id: str) -> str:
        """Bind a fresh webhook token to an automation and return it."""
        automation = await self._store.get(automation_id)
        if automation is None:
            raise AutomationNotFoundError(automation_id)

        previous = automation.webhook_trigger or {}
        if previous.get("token"):
            self._webhooks.pop(previous["token"], None)

        token = secrets.token_hex(self._token_bytes)
        triggers = dict(automation.triggers)
        triggers["webhook"] = {
            **previous,
            "enabled": True,
            "token": token,
            "createdAt": datetime.now().isoformat(),
        }
        await self._store.save_triggers(automation_id, triggers)
        self._webhooks[token] = automation_id
        logger.info("Webhook enabled for automation %s", automation_id)
        return token

    async def disable_webhook(self, automation_id: str) -> bool:
        """Stop routing an automation's webhook, keeping its binding."""
        automation = await self._store.get(automation_id)
        if automation is None:
            raise AutomationNotFoundError(automation_id)

        webhook = automation.webhook_trigger
        if not webhook:
            return False
        if webhook.get("token"):
            self._webhooks.pop(webhook["token"], None)

        triggers = dict(automation.triggers)
        triggers["webhook"] = {**webhook, "enabled": False}
        await self._store.save_triggers(automation_id, triggers)
        logger.info("Webhook disabled for automation %s", automation_id)
        return True

    async def handle_webhook(
        self,
        token: str,
        payload: Any,
        headers: dict[str, str] | None = None,
    ) -> ExecutionResult:
        """Run the automation bound to ``token`` with the webhook data as input."""
        automation_id = self._webhooks.get(token)
        if automation_id is None:
            logger.warning("Webhook received with unknown token")
            return ExecutionResult.rejected(INVALID_TOKEN)

        automation = await self._store.get(automation_id)
        webhook = automation.webhook_trigger if automation else None
        if automation is None or not webhook or not webhook.get("enabled") or webhook.get("token") != token:
            self._webhooks.pop(token, None)
            return ExecutionResult.rejected(INVALID_TOKEN)
        if not automation.enabled:
            logger.info("Webhook for disabled automation %s ignored", automation_id)
            return ExecutionResult.rejected(f"Automation is disabled: {automation_id}")

        input_data = {
            "webhook": {
                "payload": payload,
                "headers": dict(headers or {}),
                "timestamp": datetime.now().isoformat(),
            }
        }
        return await self._engine.execute(automation, input_data, triggered_by="webhook")

    def stats(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "scheduledJobs": len(self._schedules),
            "webhooks": len(self._webhooks),
            "unsupportedWatchers": {a: sorted(w) for a, w in self._watchers.items()},
            "timezone": self.timezone,
        }
