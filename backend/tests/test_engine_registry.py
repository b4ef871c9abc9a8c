"""Tests for the per-identity engine registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from studyflow.persistence import LocalAchievementCache, namespace_for

from backend.api.services.engine_registry import (
    EngineRegistry,
    get_engine_registry,
    init_engine_registry,
)
from backend.api.services.notifications import NotificationQueue
from backend.api.services.xp_ledger import XPLedgerService


@pytest.fixture
def local_registry(tmp_path: Path) -> EngineRegistry:
    return EngineRegistry(
        LocalAchievementCache(tmp_path),
        None,
        XPLedgerService(),
        NotificationQueue(),
    )


class TestEngineRegistry:
    @pytest.mark.asyncio
    async def test_same_engine_per_identity(self, local_registry: EngineRegistry) -> None:
        first = await local_registry.get("u1")
        assert await local_registry.get("u1") is first
        assert await local_registry.get("u2") is not first
        assert first.loaded
        assert len(local_registry) == 2

    @pytest.mark.asyncio
    async def test_anonymous_and_blank_share_namespace(
        self, local_registry: EngineRegistry
    ) -> None:
        assert await local_registry.get(None) is await local_registry.get("")

    @pytest.mark.asyncio
    async def test_user_named_local_is_not_anonymous(
        self, local_registry: EngineRegistry
    ) -> None:
        anonymous = await local_registry.get(None)
        named = await local_registry.get("local")
        assert named is not anonymous
        assert named.identity == "local"
        assert anonymous.identity is None

    @pytest.mark.asyncio
    async def test_reset_evicts_engine(self, local_registry: EngineRegistry) -> None:
        engine = await local_registry.get("u1")
        await engine.reset()

        assert "u1" not in local_registry
        assert local_registry.gateway("u1") is None
        assert namespace_for("u1") not in local_registry._load_locks
        fresh = await local_registry.get("u1")
        assert fresh is not engine
        assert not fresh.locked


class TestModuleRegistry:
    def test_init_then_get(self, local_registry: EngineRegistry) -> None:
        init_engine_registry(local_registry)
        assert get_engine_registry() is local_registry
