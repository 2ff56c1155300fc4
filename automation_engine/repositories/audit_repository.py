"""System log repository."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from sqlmodel import select

from ..db.models import SystemLogModel
from .serialization import jsonable

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker


class SqlAuditLogRepository:
    """High and critical errors stored in the ``system_logs`` table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def insert(self, level: str, message: str, metadata: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            session.add(SystemLogModel(level=level, message=message, log_metadata=jsonable(metadata)))
            await session.commit()

    async def list(self, limit: int = 100) -> list[dict[str, Any]]:
        async with self._session_factory() as session:
            statement = select(SystemLogModel).order_by(SystemLogModel.id.desc()).limit(limit)
            result = await session.execute(statement)
            return [
                {
                    "level": row.level,
                    "message": row.message,
                    "metadata": row.log_metadata,
                    "createdAt": row.created_at.isoformat(),
                }
                for row in result.scalars().all()
            ]
