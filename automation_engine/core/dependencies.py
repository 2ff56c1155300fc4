"""FastAPI dependency injection for the automation engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, Request

if TYPE_CHECKING:
    from ..runtime import AutomationRuntime


# --- Runtime Dependency ---


def get_runtime(request: Request) -> AutomationRuntime:
    """Get the runtime owned by the application."""
    return request.app.state.runtime


# --- Service Dependencies ---


def get_automation_service(runtime=Depends(get_runtime)):
    """Get automation service instance."""
    from ..services.automation_service import AutomationService

    return AutomationService(runtime)


def get_execution_service(runtime=Depends(get_runtime)):
    """Get execution service instance."""
    from ..services.execution_service import ExecutionService

    return ExecutionService(runtime)
