"""
Built-in step executors.

Executors are grouped by category:
- sources: bring data in
- filters: drop records
- actions: reshape data or touch the file system
- interface: drive a headless browser
- destinations: deliver data out
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .actions import AggregateStep, CustomScriptStep, FileOperationStep, MergeStep, TransformStep
from .base import StepExecutor
from .connectors import CloudUploadStep, Connector, ConnectorSourceStep
from .destinations import ApiDestinationStep, DatabaseDestinationStep, EmailDestinationStep, FileDestinationStep
from .filters import DedupFilterStep, ExpressionFilterStep, RegexFilterStep, SimpleFilterStep
from .interface import (
    ClickStep,
    ExecuteScriptStep,
    ExtractStep,
    NavigateStep,
    ScreenshotStep,
    TypeStep,
    WaitStep,
)
from .sources import ApiSourceStep, FileSourceStep, ManualInputStep, WebhookDataStep

if TYPE_CHECKING:
    import httpx

    from ..browser.pool import BrowserSessionPool
    from ..core.config import Settings
    from ..engine.sandbox import ScriptSandbox
    from ..engine.step_registry import StepRegistry
    from ..resilience.guard import GuardRegistry


def register_builtin_steps(
    registry: StepRegistry,
    *,
    settings: Settings,
    sandbox: ScriptSandbox,
    http_client: httpx.AsyncClient,
    guards: GuardRegistry,
    pool: BrowserSessionPool,
) -> CloudUploadStep:
    """Register every built-in executor.

    Returns the cloud upload step so callers can attach connectors to it.
    """
    cloud = CloudUploadStep(guards)
    executors: list[StepExecutor] = [
        ManualInputStep(),
        WebhookDataStep(),
        FileSourceStep(settings.file_root),
        ApiSourceStep(http_client, guards),
        SimpleFilterStep(),
        RegexFilterStep(),
        DedupFilterStep(),
        ExpressionFilterStep(sandbox),
        TransformStep(),
        MergeStep(),
        AggregateStep(),
        CustomScriptStep(sandbox),
        FileOperationStep(settings.file_root),
        NavigateStep(pool),
        ClickStep(pool),
        TypeStep(pool),
        ExtractStep(pool),
        WaitStep(pool),
        ScreenshotStep(pool, settings.browser_screenshot_dir),
        ExecuteScriptStep(pool),
        FileDestinationStep(settings.file_root),
        ApiDestinationStep(http_client, guards),
        DatabaseDestinationStep(),
        EmailDestinationStep(settings),
        cloud,
    ]
    for executor in executors:
        registry.register(executor)
    return cloud


def register_connector(
    registry: StepRegistry,
    type_tag: str,
    connector: Connector,
    guards: GuardRegistry,
    cloud: CloudUploadStep | None = None,
) -> ConnectorSourceStep:
    """Expose an external connector as a source step, and optionally as an upload target."""
    step = ConnectorSourceStep(type_tag, connector, guards)
    registry.register(step)
    if cloud is not None:
        cloud.add_connector(connector.name, connector)
    return step


__all__ = [
    "StepExecutor",
    "Connector",
    "register_builtin_steps",
    "register_connector",
]
