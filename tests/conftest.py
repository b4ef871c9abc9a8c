"""Shared test fixtures for studyflow tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from studyflow.engine import AchievementEngine
from studyflow.persistence import AchievementGateway, LocalAchievementCache
from studyflow.reconcile import UserAchievementRecord
from studyflow.sessions import StudySession, StudyType

SessionFactory = Callable[..., StudySession]

NOW = datetime(2026, 3, 18, 12, 0, tzinfo=UTC)


class InMemoryRemote:
    """Remote repository double keyed like the DB table.

    ``hold`` makes upserts park until released, to simulate a slow network
    round-trip that overlaps a reset.
    """

    def __init__(self) -> None:
        self.rows: dict[str, dict[tuple[str, int], UserAchievementRecord]] = {}
        self.upserts = 0
        self.fail = False
        self.hold = asyncio.Event()
        self.hold.set()

    async def fetch(self, user_id: str) -> list[UserAchievementRecord]:
        if self.fail:
            raise ConnectionError("remote unavailable")
        return list(self.rows.get(user_id, {}).values())

    async def upsert(
        self,
        user_id: str,
        records: Sequence[UserAchievementRecord],
        is_current: Callable[[], bool] | None = None,
    ) -> None:
        await self.hold.wait()
        if self.fail:
            raise ConnectionError("remote unavailable")
        if is_current is not None and not is_current():
            return
        self.upserts += 1
        table = self.rows.setdefault(user_id, {})
        for record in records:
            table[record.key] = record

    async def delete_all(self, user_id: str) -> None:
        if self.fail:
            raise ConnectionError("remote unavailable")
        self.rows.pop(user_id, None)


@pytest.fixture
def make_session() -> SessionFactory:
    """Factory for StudySession with zeroed defaults."""

    def _make(**overrides: object) -> StudySession:
        defaults: dict[str, object] = {
            "subject_id": "math",
            "type": StudyType.QUESTIONS.value,
        }
        defaults.update(overrides)
        return StudySession(**defaults)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def local_cache() -> LocalAchievementCache:
    return LocalAchievementCache()


@pytest.fixture
def disk_cache(tmp_path: Path) -> LocalAchievementCache:
    return LocalAchievementCache(tmp_path / "achievements")


@pytest.fixture
def remote() -> InMemoryRemote:
    return InMemoryRemote()


@pytest.fixture
def gateway(local_cache: LocalAchievementCache) -> AchievementGateway:
    return AchievementGateway(local_cache)


@pytest.fixture
def xp_ledger() -> MagicMock:
    return MagicMock(name="xp_ledger")


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock(name="notifier")


@pytest.fixture
def engine(
    gateway: AchievementGateway, xp_ledger: MagicMock, notifier: MagicMock
) -> AchievementEngine:
    return AchievementEngine(
        gateway,
        xp_ledger=xp_ledger,
        notifier=notifier,
        clock=lambda: NOW,
        tz=UTC,
    )
