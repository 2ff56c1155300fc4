"""Execution repository for database persistence."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from sqlmodel import select

from ..core.exceptions import ExecutionNotFoundError
from ..db.models import ExecutionModel
from ..engine.types import ExecutionRecord, ExecutionStatus
from ..storage.base import check_transition
from .serialization import jsonable

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

JSON_FIELDS = ("input_data", "output_data", "logs", "error_details", "retry_info")


class SqlExecutionRepository:
    """Execution records stored in the ``executions`` table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        """Get an execution record by ID."""
        async with self._session_factory() as session:
            db_execution = await session.get(ExecutionModel, execution_id)
            return self._to_execution_record(db_execution) if db_execution else None

    async def insert(self, record: ExecutionRecord) -> ExecutionRecord:
        """Create the record when a run starts."""
        async with self._session_factory() as session:
            db_execution = ExecutionModel(
                id=record.id,
                automation_id=record.automation_id,
                status=record.status.value,
                triggered_by=record.triggered_by,
                started_at=record.started_at,
                completed_at=record.completed_at,
                duration_ms=record.duration_ms,
            )
            for name in JSON_FIELDS:
                setattr(db_execution, name, jsonable(getattr(record, name)))
            session.add(db_execution)
            await session.commit()
            await session.refresh(db_execution)
            return self._to_execution_record(db_execution)

    async def update(self, execution_id: str, **fields: Any) -> ExecutionRecord:
        """Apply field changes, refusing any backwards status move."""
        async with self._session_factory() as session:
            db_execution = await session.get(ExecutionModel, execution_id)
            if not db_execution:
                raise ExecutionNotFoundError(execution_id)

            if "status" in fields:
                requested = ExecutionStatus(fields.pop("status"))
                check_transition(execution_id, ExecutionStatus(db_execution.status), requested)
                db_execution.status = requested.value

            for name, value in fields.items():
                setattr(db_execution, name, jsonable(value) if name in JSON_FIELDS else value)

            await session.commit()
            await session.refresh(db_execution)
            return self._to_execution_record(db_execution)

    async def list(self, automation_id: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        """List execution records, newest first."""
        async with self._session_factory() as session:
            statement = select(ExecutionModel).order_by(ExecutionModel.started_at.desc()).limit(limit)
            if automation_id:
                statement = statement.where(ExecutionModel.automation_id == automation_id)
            result = await session.execute(statement)
            return [self._to_execution_record(e) for e in result.scalars().all()]

    def _to_execution_record(self, db_execution: ExecutionModel) -> ExecutionRecord:
        """Convert database model to ExecutionRecord."""
        return ExecutionRecord(
            id=db_execution.id,
            automation_id=db_execution.automation_id,
            status=ExecutionStatus(db_execution.status),
            triggered_by=db_execution.triggered_by,
            started_at=db_execution.started_at,
            input_data=db_execution.input_data or {},
            output_data=db_execution.output_data,
            logs=db_execution.logs or [],
            error_details=db_execution.error_details,
            retry_info=db_execution.retry_info,
            completed_at=db_execution.completed_at,
            duration_ms=db_execution.duration_ms,
        )
