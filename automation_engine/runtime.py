"""
Automation runtime: builds and owns every long-lived service.

The registry, guards, browser pool and scheduler are created here and passed
to whoever needs them. Nothing in the engine is a module global.
"""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

import httpx

from .browser import BrowserSessionPool, PlaywrightLauncher
from .engine.metrics import ExecutionMetrics
from .engine.sandbox import ScriptSandbox
from .engine.step_registry import StepRegistry
from .engine.workflow_engine import WorkflowEngine
from .resilience import ErrorClassifier, GuardRegistry, RetryOrchestrator
from .scheduler import Scheduler
from .steps import register_builtin_steps, register_connector
from .storage import InMemoryAuditLogStore, InMemoryAutomationStore, InMemoryExecutionStore

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    from .browser import BrowserLauncher
    from .core.config import Settings
    from .steps import Connector
    from .storage.base import AuditLogStore, AutomationStore, ExecutionStore

logger = logging.getLogger(__name__)


class AutomationRuntime:
    """Wires the execution core together and runs its lifecycle."""

    def __init__(
        self,
        settings: Settings,
        *,
        automation_store: AutomationStore | None = None,
        execution_store: ExecutionStore | None = None,
        audit_store: AuditLogStore | None = None,
        launcher: BrowserLauncher | None = None,
        http_client: httpx.AsyncClient | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.settings = settings
        self.automation_store = automation_store or InMemoryAutomationStore()
        self.execution_store = execution_store or InMemoryExecutionStore()
        self.audit_store = audit_store or InMemoryAuditLogStore()

        self.guards = GuardRegistry.from_settings(settings)
        self.sandbox = ScriptSandbox(timeout_s=settings.script_timeout_s)
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_s)
        self.pool = BrowserSessionPool.from_settings(launcher or PlaywrightLauncher(), settings)

        self.registry = StepRegistry()
        self._cloud = register_builtin_steps(
            self.registry,
            settings=settings,
            sandbox=self.sandbox,
            http_client=self.http_client,
            guards=self.guards,
            pool=self.pool,
        )

        self.classifier = ErrorClassifier(self.audit_store)
        self.retry = RetryOrchestrator(
            self.execution_store,
            max_delay_ms=settings.max_retry_delay_ms,
            jitter=settings.retry_jitter,
        )
        self.metrics = ExecutionMetrics.from_settings(settings)
        self.engine = WorkflowEngine(self.registry, self.execution_store, self.classifier, self.retry, self.metrics)
        self.scheduler = Scheduler(
            self.engine,
            self.automation_store,
            timezone=settings.scheduler_timezone,
            max_overlapping_runs=settings.scheduler_max_overlapping_runs,
            token_bytes=settings.webhook_token_bytes,
            scheduler=scheduler,
        )
        self._started = False

    @classmethod
    def with_database(cls, settings: Settings, session_factory: Any, **kwargs: Any) -> AutomationRuntime:
        """Build a runtime whose stores live in the SQL database."""
        from .repositories import SqlAuditLogRepository, SqlAutomationRepository, SqlExecutionRepository

        return cls(
            settings,
            automation_store=SqlAutomationRepository(session_factory),
            execution_store=SqlExecutionRepository(session_factory),
            audit_store=SqlAuditLogRepository(session_factory),
            **kwargs,
        )

    def register_connector(self, type_tag: str, connector: Connector) -> None:
        """Add an external connector as a source step and upload target. Call before start()."""
        register_connector(self.registry, type_tag, connector, self.guards, cloud=self._cloud)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        self.registry.freeze()
        await self.pool.start()
        await self.scheduler.start()
        self._started = True
        logger.info("Automation runtime started with %d step types", len(self.registry.list()))

    async def stop(self) -> None:
        if not self._started:
            return
        await self.scheduler.stop()
        await self.pool.stop()
        for step_type in self.registry.list():
            await self.registry.get(step_type).close()
        await self.http_client.aclose()
        self.sandbox.close()
        self._started = False
        logger.info("Automation runtime stopped")

    def stats(self) -> dict[str, Any]:
        return {
            "activeExecutions": self.engine.active_executions(),
            "retries": self.retry.stats(),
            "errors": self.classifier.stats(),
            "performance": self.metrics.stats(),
            "browser": self.pool.stats(),
            "guards": self.guards.stats(),
            "scheduler": self.scheduler.stats(),
            "stepTypes": len(self.registry.list()),
        }
