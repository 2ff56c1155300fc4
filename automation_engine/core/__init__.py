"""Core module - config, exceptions and logging."""

from .config import settings, Settings, get_settings
from .exceptions import (
    AutomationEngineError,
    AutomationNotFoundError,
    ExecutionNotFoundError,
    StepExecutorNotFoundError,
    ValidationError,
)

__all__ = [
    # Config
    "settings",
    "Settings",
    "get_settings",
    # Exceptions
    "AutomationEngineError",
    "AutomationNotFoundError",
    "ExecutionNotFoundError",
    "StepExecutorNotFoundError",
    "ValidationError",
]
