"""Test fixtures for the backend test suite."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studyflow.persistence import LocalAchievementCache

from backend.api.db.models import Base
from backend.api.main import app
from backend.api.services.db_achievement_store import DbAchievementStore
from backend.api.services.engine_registry import EngineRegistry, get_engine_registry
from backend.api.services.notifications import NotificationQueue
from backend.api.services.xp_ledger import XPLedgerService

TEST_USER_ID = "test-user-123"


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh file-backed SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'studyflow.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def registry(
    tmp_path: Path, session_factory: async_sessionmaker[AsyncSession]
) -> EngineRegistry:
    return EngineRegistry(
        LocalAchievementCache(tmp_path / "achievements"),
        DbAchievementStore(session_factory),
        XPLedgerService(session_factory),
        NotificationQueue(),
    )


@pytest_asyncio.fixture
async def client(registry: EngineRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the app, authenticated as ``TEST_USER_ID``."""
    app.dependency_overrides[get_engine_registry] = lambda: registry
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": TEST_USER_ID},
    ) as ac:
        yield ac
    await registry.flush()
    app.dependency_overrides.pop(get_engine_registry, None)


@pytest_asyncio.fixture
async def anon_client(registry: EngineRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client without an identity (local-cache-only mode)."""
    app.dependency_overrides[get_engine_registry] = lambda: registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_engine_registry, None)
