"""Execution-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RunAutomationRequest(BaseModel):
    """Request schema for running an automation manually."""

    model_config = ConfigDict(populate_by_name=True)

    input_data: dict[str, Any] | None = Field(None, alias="inputData", description="Input for the first step")


class ExecutionResultResponse(BaseModel):
    """Outcome of a run, as returned by the engine."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    execution_id: str | None = Field(None, alias="executionId")
    status: str | None = None
    results: Any = None
    error: str | None = None
    logs: list[dict[str, Any]] = Field(default_factory=list)
    duration: int = Field(0, description="Run time in ms")
    error_analysis: dict[str, Any] | None = Field(None, alias="errorAnalysis")


class CancelResponse(BaseModel):
    """Response schema for a cancellation request."""

    model_config = ConfigDict(populate_by_name=True)

    execution_id: str = Field(..., alias="executionId")
    cancelled: bool
