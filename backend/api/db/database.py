"""Async database engine and session factory."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backend.api.config import Settings
from backend.api.db.models import Base

_settings = Settings()

async_engine = create_async_engine(
    _settings.database_url,
    echo=_settings.debug,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def create_schema() -> None:
    """Create missing tables without Alembic (local SQLite development)."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
