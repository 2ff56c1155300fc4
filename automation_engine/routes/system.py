"""Error report and runtime statistics routes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_runtime
from ..runtime import AutomationRuntime

router = APIRouter()

RuntimeDep = Annotated[AutomationRuntime, Depends(get_runtime)]


@router.get("/errors/report")
async def error_report(
    runtime: RuntimeDep,
    time_range: str = Query("24h", alias="timeRange", description="Window such as 30m, 24h or 7d"),
) -> dict[str, Any]:
    """Error counts and top recurring messages inside a time window."""
    try:
        return runtime.classifier.report(time_range)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/system/stats")
async def system_stats(runtime: RuntimeDep) -> dict[str, Any]:
    """Runtime statistics: executions, retries, browser pool, guards, scheduler."""
    return runtime.stats()


@router.get("/steps")
async def list_step_types(runtime: RuntimeDep) -> list[dict[str, Any]]:
    """List registered step types."""
    return [info.to_dict() for info in runtime.registry.describe()]
