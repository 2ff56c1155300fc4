"""Automation repository for database persistence."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, TYPE_CHECKING

from sqlmodel import select

from ..core.exceptions import AutomationNotFoundError
from ..db.models import AutomationModel
from ..engine.types import Automation, RetryConfig, Schedule, Step
from .serialization import jsonable

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker


class SqlAutomationRepository:
    """Automations stored in the ``automations`` table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, automation_id: str) -> Automation | None:
        async with self._session_factory() as session:
            db_automation = await session.get(AutomationModel, automation_id)
            return self._to_automation(db_automation) if db_automation else None

    async def insert(self, automation: Automation) -> Automation:
        async with self._session_factory() as session:
            db_automation = AutomationModel(id=automation.id, name=automation.name)
            self._apply(db_automation, automation)
            db_automation.version = automation.version
            db_automation.created_at = automation.created_at
            db_automation.updated_at = automation.updated_at
            session.add(db_automation)
            await session.commit()
            await session.refresh(db_automation)
            return self._to_automation(db_automation)

    async def update(self, automation_id: str, **changes: Any) -> Automation:
        """Apply changes and store them as the next version."""
        async with self._session_factory() as session:
            db_automation = await session.get(AutomationModel, automation_id)
            if not db_automation:
                raise AutomationNotFoundError(automation_id)

            changes.pop("version", None)
            current = self._to_automation(db_automation)
            updated = replace(current, **changes, version=current.version + 1, updated_at=datetime.now())
            self._apply(db_automation, updated)
            db_automation.version = updated.version
            db_automation.updated_at = updated.updated_at
            await session.commit()
            await session.refresh(db_automation)
            return self._to_automation(db_automation)

    async def save_triggers(self, automation_id: str, triggers: dict[str, Any]) -> Automation:
        """Persist trigger bindings without bumping the version."""
        async with self._session_factory() as session:
            db_automation = await session.get(AutomationModel, automation_id)
            if not db_automation:
                raise AutomationNotFoundError(automation_id)
            db_automation.triggers = jsonable(triggers)
            await session.commit()
            await session.refresh(db_automation)
            return self._to_automation(db_automation)

    async def list(self, enabled_only: bool = False) -> list[Automation]:
        async with self._session_factory() as session:
            statement = select(AutomationModel).order_by(AutomationModel.created_at)
            if enabled_only:
                statement = statement.where(AutomationModel.enabled == True)  # noqa: E712
            result = await session.execute(statement)
            return [self._to_automation(a) for a in result.scalars().all()]

    async def delete(self, automation_id: str) -> bool:
        async with self._session_factory() as session:
            db_automation = await session.get(AutomationModel, automation_id)
            if not db_automation:
                return False
            await session.delete(db_automation)
            await session.commit()
            return True

    def _apply(self, db_automation: AutomationModel, automation: Automation) -> None:
        db_automation.name = automation.name
        db_automation.description = automation.description
        db_automation.owner_id = automation.owner_id
        db_automation.enabled = automation.enabled
        db_automation.steps = jsonable([s.to_dict() for s in automation.steps])
        db_automation.schedule = jsonable(automation.schedule.to_dict()) if automation.schedule else None
        db_automation.triggers = jsonable(automation.triggers)
        db_automation.retry_config = (
            jsonable(automation.retry_config.to_dict()) if automation.retry_config else None
        )

    def _to_automation(self, db_automation: AutomationModel) -> Automation:
        """Convert database model to Automation."""
        return Automation(
            id=db_automation.id,
            name=db_automation.name,
            description=db_automation.description,
            owner_id=db_automation.owner_id,
            enabled=db_automation.enabled,
            steps=[Step.from_dict(s) for s in db_automation.steps or []],
            schedule=Schedule.from_dict(db_automation.schedule) if db_automation.schedule else None,
            triggers=dict(db_automation.triggers or {}),
            retry_config=RetryConfig.from_dict(db_automation.retry_config) if db_automation.retry_config else None,
            version=db_automation.version,
            created_at=db_automation.created_at,
            updated_at=db_automation.updated_at,
        )
