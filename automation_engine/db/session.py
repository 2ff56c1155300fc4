"""Database session management."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from ..core.config import settings

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./automations.db"
DATABASE_URL = settings.database_url or DEFAULT_DATABASE_URL


def make_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(url or DATABASE_URL, echo=settings.debug, future=True)


def make_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()
async_session_factory = make_session_factory(engine)


async def init_db(target: AsyncEngine | None = None) -> None:
    """Initialize database tables."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

