"""Automation-related Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class StepConnectionSchema(BaseModel):
    """Schema for a visual connection between steps."""

    model_config = ConfigDict(populate_by_name=True)

    target_id: str = Field(..., alias="targetId", description="Id of the connected step")
    label: str | None = Field(None, description="Connection label")


class StepSchema(BaseModel):
    """Schema for one step of an automation."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "fetch",
                "type": "source_api",
                "name": "Fetch orders",
                "config": {"url": "https://api.example.com/orders"},
                "connections": [{"targetId": "filter"}],
            }
        }
    )

    id: str = Field(..., min_length=1, description="Step id, unique within the automation")
    type: str = Field(..., description="Step type tag")
    name: str | None = Field(None, description="Display name")
    config: dict[str, Any] = Field(default_factory=dict, description="Step configuration")
    connections: list[StepConnectionSchema] = Field(default_factory=list)


class ScheduleSchema(BaseModel):
    """Schema for a cron schedule."""

    model_config = ConfigDict(populate_by_name=True)

    cron_expression: str = Field(..., alias="cronExpression", description="5-field crontab expression")
    timezone: str | None = Field(None, description="IANA timezone, defaults to the scheduler's")
    enabled: bool = True
    input_data: dict[str, Any] = Field(default_factory=dict, alias="inputData")
    allow_overlap: bool = Field(True, alias="allowOverlap", description="False skips fires while a run is active")


class RetryConfigSchema(BaseModel):
    """Schema for the retry policy of a run."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    max_retries: int = Field(3, ge=0, le=10, alias="maxRetries")
    strategy: Literal["immediate", "fixed", "linear", "exponential"] = "exponential"
    base_delay_ms: int = Field(1000, ge=0, alias="baseDelay", description="Base delay in ms")


class AutomationDefinition(BaseModel):
    """A full automation definition, as submitted for validation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(None, description="Optional id; generated when omitted")
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    owner_id: str | None = Field(None, alias="ownerId")
    enabled: bool = True
    steps: list[StepSchema] = Field(default_factory=list)
    schedule: ScheduleSchema | None = None
    triggers: dict[str, Any] = Field(default_factory=dict)
    retry_config: RetryConfigSchema | None = Field(None, alias="retryConfig")


class AutomationCreateRequest(AutomationDefinition):
    """Request schema for creating an automation."""

    steps: list[StepSchema] = Field(..., min_length=1)


class AutomationUpdateRequest(BaseModel):
    """Request schema for updating an automation. Omitted fields are kept."""

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    owner_id: str | None = Field(None, alias="ownerId")
    enabled: bool | None = None
    steps: list[StepSchema] | None = Field(None, min_length=1)
    retry_config: RetryConfigSchema | None = Field(None, alias="retryConfig")


class ValidationResponse(BaseModel):
    """Response schema for automation validation."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ScheduleStatusResponse(BaseModel):
    """Live timer state of an automation."""

    model_config = ConfigDict(populate_by_name=True)

    automation_id: str = Field(..., alias="automationId")
    scheduled: bool
    cron_expression: str | None = Field(None, alias="cronExpression")
    timezone: str | None = None
    allow_overlap: bool | None = Field(None, alias="allowOverlap")
    next_run: str | None = Field(None, alias="nextRun")


class WebhookResponse(BaseModel):
    """Webhook binding of an automation."""

    model_config = ConfigDict(populate_by_name=True)

    automation_id: str = Field(..., alias="automationId")
    enabled: bool
    token: str | None = None
    url: str | None = None
