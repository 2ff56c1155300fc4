"""Pydantic schemas for API request/response validation."""

from .automation import (
    AutomationCreateRequest,
    AutomationDefinition,
    AutomationUpdateRequest,
    RetryConfigSchema,
    ScheduleSchema,
    ScheduleStatusResponse,
    StepConnectionSchema,
    StepSchema,
    ValidationResponse,
    WebhookResponse,
)
from .execution import (
    CancelResponse,
    ExecutionResultResponse,
    RunAutomationRequest,
)
from .common import (
    SuccessResponse,
    HealthResponse,
    RootResponse,
)

__all__ = [
    # Automation schemas
    "AutomationCreateRequest",
    "AutomationDefinition",
    "AutomationUpdateRequest",
    "RetryConfigSchema",
    "ScheduleSchema",
    "ScheduleStatusResponse",
    "StepConnectionSchema",
    "StepSchema",
    "ValidationResponse",
    "WebhookResponse",
    # Execution schemas
    "CancelResponse",
    "ExecutionResultResponse",
    "RunAutomationRequest",
    # Common schemas
    "SuccessResponse",
    "HealthResponse",
    "RootResponse",
]
