"""Execution engine types and context.

The engine, registry and sandbox live in their own modules and are imported
from there to keep this package free of import cycles.
"""

from .context import WorkflowContext
from .types import (
    Automation,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    LogEntry,
    RetryConfig,
    RetryStrategy,
    Schedule,
    Step,
    StepConnection,
    StepOutcome,
    ValidationReport,
    ValidationResult,
)

__all__ = [
    "WorkflowContext",
    "Automation",
    "ExecutionRecord",
    "ExecutionResult",
    "ExecutionStatus",
    "LogEntry",
    "RetryConfig",
    "RetryStrategy",
    "Schedule",
    "Step",
    "StepConnection",
    "StepOutcome",
    "ValidationReport",
    "ValidationResult",
]
