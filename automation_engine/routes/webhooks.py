"""Webhook route for triggering automations by token."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..core.dependencies import get_runtime
from ..runtime import AutomationRuntime
from ..scheduler import INVALID_TOKEN
from ..schemas.execution import ExecutionResultResponse

router = APIRouter()

RuntimeDep = Annotated[AutomationRuntime, Depends(get_runtime)]


@router.post("/webhooks/{token}", response_model=ExecutionResultResponse)
async def handle_webhook(token: str, request: Request, runtime: RuntimeDep) -> ExecutionResultResponse:
    """Run the automation bound to a webhook token."""
    body = await request.body()
    payload: Any = {}
    if body:
        try:
            payload = await request.json()
        except ValueError:
            payload = body.decode("utf-8", errors="replace")

    result = await runtime.scheduler.handle_webhook(token, payload, dict(request.headers))
    if result.execution_id is None:
        status = 404 if result.error == INVALID_TOKEN else 409
        raise HTTPException(status_code=status, detail=result.error)
    return ExecutionResultResponse.model_validate(result.to_dict())
