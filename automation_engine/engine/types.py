"""Core type definitions for the automation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ..resilience.error_classifier import ErrorAnalysis


class ExecutionStatus(str, Enum):
    """Lifecycle states of an execution record."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class RetryStrategy(str, Enum):
    """Backoff strategies understood by the retry orchestrator."""

    IMMEDIATE = "immediate"
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


# --- Automation definition ---


@dataclass(frozen=True)
class StepConnection:
    """Visual wiring between steps. Never used for dispatch."""

    target_id: str
    label: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepConnection:
        return cls(target_id=data.get("targetId") or data.get("target_id") or "", label=data.get("label"))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"targetId": self.target_id}
        if self.label:
            result["label"] = self.label
        return result


@dataclass(frozen=True)
class Step:
    """One typed unit of work inside an automation."""

    id: str
    type: str
    config: dict[str, Any] = field(default_factory=dict)
    connections: list[StepConnection] = field(default_factory=list)
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Step:
        return cls(
            id=str(data["id"]),
            type=data["type"],
            config=dict(data.get("config") or {}),
            connections=[StepConnection.from_dict(c) for c in data.get("connections") or []],
            name=data.get("name"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "config": self.config,
            "connections": [c.to_dict() for c in self.connections],
        }
        if self.name:
            result["name"] = self.name
        return result


@dataclass(frozen=True)
class Schedule:
    """Cron schedule attached to an automation."""

    cron_expression: str
    timezone: str | None = None
    enabled: bool = True
    input_data: dict[str, Any] = field(default_factory=dict)
    # False switches the automation to skip-if-running
    allow_overlap: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schedule:
        return cls(
            cron_expression=data.get("cronExpression") or data.get("cron_expression") or "",
            timezone=data.get("timezone"),
            enabled=data.get("enabled", True),
            input_data=dict(data.get("inputData") or data.get("input_data") or {}),
            allow_overlap=data.get("allowOverlap", data.get("allow_overlap", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cronExpression": self.cron_expression,
            "timezone": self.timezone,
            "enabled": self.enabled,
            "inputData": self.input_data,
            "allowOverlap": self.allow_overlap,
        }


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for a whole automation run."""

    enabled: bool = False
    max_retries: int = 3
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    base_delay_ms: int = 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        return cls(
            enabled=data.get("enabled", False),
            max_retries=int(data.get("maxRetries", data.get("max_retries", 3))),
            strategy=RetryStrategy(data.get("strategy") or RetryStrategy.EXPONENTIAL.value),
            base_delay_ms=int(data.get("baseDelay", data.get("base_delay_ms", 1000))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "maxRetries": self.max_retries,
            "strategy": self.strategy.value,
            "baseDelay": self.base_delay_ms,
        }


@dataclass(frozen=True)
class Automation:
    """Immutable-per-version automation definition.

    Updates go through the automation store, which returns a new value with
    ``version`` incremented.
    """

    id: str
    name: str
    steps: list[Step]
    description: str | None = None
    owner_id: str | None = None
    enabled: bool = True
    schedule: Schedule | None = None
    triggers: dict[str, Any] = field(default_factory=dict)
    retry_config: RetryConfig | None = None
    version: int = 1
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def webhook_trigger(self) -> dict[str, Any] | None:
        webhook = self.triggers.get("webhook")
        return webhook if isinstance(webhook, dict) else None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Automation:
        schedule = data.get("schedule")
        retry = data.get("retryConfig") or data.get("retry_config")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            description=data.get("description"),
            steps=[Step.from_dict(s) for s in data.get("steps") or []],
            owner_id=data.get("ownerId") or data.get("owner_id"),
            enabled=data.get("enabled", True),
            schedule=Schedule.from_dict(schedule) if schedule else None,
            triggers=dict(data.get("triggers") or {}),
            retry_config=RetryConfig.from_dict(retry) if retry else None,
            version=int(data.get("version", 1)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
            "ownerId": self.owner_id,
            "enabled": self.enabled,
            "schedule": self.schedule.to_dict() if self.schedule else None,
            "triggers": self.triggers,
            "retryConfig": self.retry_config.to_dict() if self.retry_config else None,
            "version": self.version,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


# --- Execution ---


@dataclass
class LogEntry:
    """A single structured log line captured during an execution."""

    timestamp: datetime
    level: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "metadata": self.metadata,
        }


@dataclass
class ExecutionRecord:
    """Persisted record of one automation run."""

    id: str
    automation_id: str
    status: ExecutionStatus
    triggered_by: str
    started_at: datetime
    input_data: dict[str, Any] = field(default_factory=dict)
    output_data: dict[str, Any] | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)
    error_details: dict[str, Any] | None = None
    retry_info: dict[str, Any] | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "automationId": self.automation_id,
            "status": self.status.value,
            "triggeredBy": self.triggered_by,
            "inputData": self.input_data,
            "outputData": self.output_data,
            "logs": self.logs,
            "errorDetails": self.error_details,
            "retryInfo": self.retry_info,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "durationMs": self.duration_ms,
        }


@dataclass
class StepOutcome:
    """Result returned by a step executor."""

    success: bool
    data: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    """Outcome of validating one step config."""

    valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> ValidationResult:
        return cls(valid=not errors, errors=errors)


@dataclass
class ValidationReport:
    """Outcome of validating a whole automation."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ExecutionResult:
    """What the engine hands back to its caller."""

    success: bool
    execution_id: str | None
    status: ExecutionStatus | None = None
    results: Any = None
    error: str | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)
    duration_ms: int = 0
    error_analysis: ErrorAnalysis | None = None

    @classmethod
    def rejected(cls, error: str) -> ExecutionResult:
        """A result for a run that never started."""
        return cls(success=False, execution_id=None, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "executionId": self.execution_id,
            "status": self.status.value if self.status else None,
            "results": self.results,
            "error": self.error,
            "logs": self.logs,
            "duration": self.duration_ms,
            "errorAnalysis": self.error_analysis.to_dict() if self.error_analysis else None,
        }
