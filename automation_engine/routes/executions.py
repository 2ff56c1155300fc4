"""Execution routes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.exceptions import ExecutionNotFoundError
from ..core.dependencies import get_execution_service
from ..services.execution_service import ExecutionService
from ..schemas.execution import CancelResponse

router = APIRouter(prefix="/executions")


# Type alias for dependency injection
ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]


@router.get("")
async def list_executions(
    service: ExecutionServiceDep,
    automation_id: str | None = Query(None, alias="automationId", description="Filter by automation ID"),
    limit: int = Query(50, ge=1, le=500),
) -> list[dict[str, Any]]:
    """List execution history."""
    return [e.to_dict() for e in await service.list_executions(automation_id, limit)]


@router.get("/{execution_id}")
async def get_execution(
    execution_id: str,
    service: ExecutionServiceDep,
) -> dict[str, Any]:
    """Get execution details, with live retry progress while retrying."""
    try:
        execution = await service.get_execution(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    result = execution.to_dict()
    live = service.retry_status(execution_id)
    if live is not None:
        result["retryInfo"] = live
    return result


@router.post("/{execution_id}/cancel", response_model=CancelResponse)
async def cancel_execution(
    execution_id: str,
    service: ExecutionServiceDep,
) -> CancelResponse:
    """Cancel a running execution at its next step boundary."""
    try:
        cancelled = await service.cancel_execution(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return CancelResponse(execution_id=execution_id, cancelled=cancelled)
