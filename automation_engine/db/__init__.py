"""Database configuration and models."""

from .session import engine, async_session_factory, init_db, make_engine, make_session_factory
from .models import AutomationModel, ExecutionModel, SystemLogModel

__all__ = [
    "engine",
    "async_session_factory",
    "init_db",
    "make_engine",
    "make_session_factory",
    "AutomationModel",
    "ExecutionModel",
    "SystemLogModel",
]
