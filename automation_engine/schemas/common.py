"""Common schemas used across the API."""

from typing import Any

from pydantic import BaseModel, Field


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    message: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    uptime_seconds: float | None = None
    issues: list[dict[str, Any]] = Field(default_factory=list, description="Breached execution thresholds")


class RootResponse(BaseModel):
    """Root endpoint response."""

    name: str
    version: str
    status: str
