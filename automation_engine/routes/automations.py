"""Automation routes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.exceptions import (
    AutomationDisabledError,
    AutomationNotFoundError,
    InvalidCronExpressionError,
    ValidationError,
)
from ..core.dependencies import get_automation_service
from ..services.automation_service import AutomationService
from ..schemas.automation import (
    AutomationCreateRequest,
    AutomationDefinition,
    AutomationUpdateRequest,
    ScheduleSchema,
    ScheduleStatusResponse,
    ValidationResponse,
    WebhookResponse,
)
from ..schemas.execution import ExecutionResultResponse, RunAutomationRequest
from ..schemas.common import SuccessResponse

router = APIRouter(prefix="/automations")


# Type alias for dependency injection
AutomationServiceDep = Annotated[AutomationService, Depends(get_automation_service)]


def _validation_detail(e: ValidationError) -> dict[str, Any]:
    return {"message": e.message, "errors": e.errors}


@router.get("")
async def list_automations(
    service: AutomationServiceDep,
    enabled_only: bool = Query(False, alias="enabledOnly"),
) -> list[dict[str, Any]]:
    """List all automations."""
    return [a.to_dict() for a in await service.list_automations(enabled_only)]


@router.post("", status_code=201)
async def create_automation(
    automation: AutomationCreateRequest,
    service: AutomationServiceDep,
) -> dict[str, Any]:
    """Create a new automation."""
    try:
        created = await service.create_automation(automation)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_validation_detail(e))
    return created.to_dict()


@router.post("/validate", response_model=ValidationResponse)
async def validate_automation(
    automation: AutomationDefinition,
    service: AutomationServiceDep,
) -> ValidationResponse:
    """Validate an automation definition without saving it."""
    report = service.validate(automation)
    return ValidationResponse(valid=report.valid, errors=report.errors, warnings=report.warnings)


@router.get("/{automation_id}")
async def get_automation(
    automation_id: str,
    service: AutomationServiceDep,
) -> dict[str, Any]:
    """Get a single automation by ID."""
    try:
        return (await service.get_automation(automation_id)).to_dict()
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.put("/{automation_id}")
async def update_automation(
    automation_id: str,
    automation: AutomationUpdateRequest,
    service: AutomationServiceDep,
) -> dict[str, Any]:
    """Update an automation, storing it as a new version."""
    try:
        return (await service.update_automation(automation_id, automation)).to_dict()
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_validation_detail(e))


@router.post("/{automation_id}/run", response_model=ExecutionResultResponse)
async def run_automation(
    automation_id: str,
    service: AutomationServiceDep,
    body: RunAutomationRequest | None = None,
) -> ExecutionResultResponse:
    """Run an automation with optional input data."""
    try:
        result = await service.run_automation(automation_id, body.input_data if body else None)
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except AutomationDisabledError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return ExecutionResultResponse.model_validate(result.to_dict())


# --- Schedule ---


@router.get("/{automation_id}/schedule", response_model=ScheduleStatusResponse)
async def get_schedule(
    automation_id: str,
    service: AutomationServiceDep,
) -> ScheduleStatusResponse:
    """Get the live schedule of an automation."""
    return ScheduleStatusResponse.model_validate(service.schedule_status(automation_id))


@router.put("/{automation_id}/schedule", response_model=ScheduleStatusResponse)
async def set_schedule(
    automation_id: str,
    schedule: ScheduleSchema,
    service: AutomationServiceDep,
) -> ScheduleStatusResponse:
    """Set or replace the cron schedule of an automation."""
    try:
        return ScheduleStatusResponse.model_validate(await service.set_schedule(automation_id, schedule))
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidCronExpressionError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.delete("/{automation_id}/schedule", response_model=SuccessResponse)
async def remove_schedule(
    automation_id: str,
    service: AutomationServiceDep,
) -> SuccessResponse:
    """Remove the cron schedule of an automation."""
    try:
        removed = await service.remove_schedule(automation_id)
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return SuccessResponse(message="Schedule removed" if removed else "No active schedule")


# --- Webhook ---


@router.post("/{automation_id}/webhook/enable", response_model=WebhookResponse)
async def enable_webhook(
    automation_id: str,
    service: AutomationServiceDep,
) -> WebhookResponse:
    """Enable the webhook trigger, issuing a fresh token."""
    try:
        token = await service.enable_webhook(automation_id)
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return WebhookResponse(automation_id=automation_id, enabled=True, token=token, url=f"/webhooks/{token}")


@router.post("/{automation_id}/webhook/disable", response_model=WebhookResponse)
async def disable_webhook(
    automation_id: str,
    service: AutomationServiceDep,
) -> WebhookResponse:
    """Disable the webhook trigger, keeping its binding."""
    try:
        await service.disable_webhook(automation_id)
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return WebhookResponse(automation_id=automation_id, enabled=False)
