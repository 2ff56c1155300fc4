"""SQLModel database models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlmodel import Column, Field, SQLModel
from sqlalchemy import JSON


class AutomationModel(SQLModel, table=True):
    """Automation database model."""

    __tablename__ = "automations"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    owner_id: str | None = Field(default=None, index=True)
    enabled: bool = Field(default=True, index=True)
    version: int = Field(default=1)

    # Ordered list of step definitions
    steps: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    schedule: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    triggers: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    retry_config: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ExecutionModel(SQLModel, table=True):
    """Execution history database model."""

    __tablename__ = "executions"

    id: str = Field(primary_key=True)
    automation_id: str = Field(index=True)

    status: str = Field(index=True)  # running, completed, failed, cancelled
    triggered_by: str  # manual, scheduled, webhook, retry_n

    input_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    output_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    logs: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    error_details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    retry_info: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    started_at: datetime = Field(default_factory=datetime.now, index=True)
    completed_at: datetime | None = Field(default=None)
    duration_ms: int | None = Field(default=None)


class SystemLogModel(SQLModel, table=True):
    """Audit log of high and critical errors."""

    __tablename__ = "system_logs"

    id: int | None = Field(default=None, primary_key=True)
    level: str = Field(index=True)
    message: str
    log_metadata: dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=datetime.now, index=True)
