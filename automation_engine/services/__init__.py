"""Service layer for automation business logic."""

from .automation_service import AutomationService
from .execution_service import ExecutionService

__all__ = [
    "AutomationService",
    "ExecutionService",
]
