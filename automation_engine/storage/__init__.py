"""In-memory stores for automations, executions and audit logs."""

from .audit_store import InMemoryAuditLogStore
from .automation_store import InMemoryAutomationStore
from .base import AuditLogStore, AutomationStore, ExecutionStore, check_transition
from .execution_store import InMemoryExecutionStore

__all__ = [
    "AuditLogStore",
    "AutomationStore",
    "ExecutionStore",
    "check_transition",
    "InMemoryAuditLogStore",
    "InMemoryAutomationStore",
    "InMemoryExecutionStore",
]
