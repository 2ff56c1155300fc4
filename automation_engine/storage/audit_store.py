"""In-memory audit log."""

from __future__ import annotations

from datetime import datetime
from typing import Any


class InMemoryAuditLogStore:
    """Keeps system log rows in a list."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    async def insert(self, level: str, message: str, metadata: dict[str, Any]) -> None:
        self.records.append({
            "level": level,
            "message": message,
            "metadata": metadata,
            "createdAt": datetime.now().isoformat(),
        })

    async def list(self, limit: int = 100) -> list[dict[str, Any]]:
        return list(reversed(self.records))[:limit]
