"""Repository layer for data persistence."""

from .audit_repository import SqlAuditLogRepository
from .automation_repository import SqlAutomationRepository
from .execution_repository import SqlExecutionRepository

__all__ = [
    "SqlAuditLogRepository",
    "SqlAutomationRepository",
    "SqlExecutionRepository",
]
