"""DB-backed remote repository for achievement records.

Rows live in ``user_achievements``, unique on (user_id, achievement_id,
level).  Upserts are select-then-update/insert and never clear a stored
``unlocked_at`` or ``claimed_at``, so replaying any earlier save is safe.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyflow.reconcile import UserAchievementRecord

from backend.api.db.models import UserAchievement as UserAchievementModel

logger = logging.getLogger(__name__)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo even on timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_record(row: UserAchievementModel) -> UserAchievementRecord:
    unlocked_at = _aware(row.unlocked_at)
    claimed_at = _aware(row.claimed_at)
    if claimed_at is not None and unlocked_at is None:
        unlocked_at = claimed_at
    return UserAchievementRecord(
        achievement_id=row.achievement_id,
        level=row.level,
        unlocked_at=unlocked_at,
        claimed_at=claimed_at,
        progress=row.progress or 0.0,
    )


async def fetch_user_achievements_db(
    db: AsyncSession, user_id: str
) -> list[UserAchievementRecord]:
    result = await db.execute(
        select(UserAchievementModel)
        .where(UserAchievementModel.user_id == user_id)
        .order_by(UserAchievementModel.achievement_id, UserAchievementModel.level)
    )
    return [_to_record(row) for row in result.scalars().all()]


async def upsert_user_achievements_db(
    db: AsyncSession,
    user_id: str,
    records: Sequence[UserAchievementRecord],
) -> None:
    """Insert or update one row per record for *user_id*."""
    result = await db.execute(
        select(UserAchievementModel).where(UserAchievementModel.user_id == user_id)
    )
    existing = {(row.achievement_id, row.level): row for row in result.scalars().all()}

    for record in records:
        row = existing.get(record.key)
        if row is None:
            row = UserAchievementModel(
                user_id=user_id,
                achievement_id=record.achievement_id,
                level=record.level,
                unlocked_at=record.unlocked_at,
                claimed_at=record.claimed_at,
                progress=float(record.progress),
            )
            db.add(row)
            existing[record.key] = row
            continue
        row.unlocked_at = row.unlocked_at or record.unlocked_at
        row.claimed_at = row.claimed_at or record.claimed_at
        row.progress = float(record.progress)
    await db.flush()


async def delete_user_achievements_db(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        delete(UserAchievementModel).where(UserAchievementModel.user_id == user_id)
    )
    return result.rowcount or 0


class DbAchievementStore:
    """Remote achievement repository over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch(self, user_id: str) -> list[UserAchievementRecord]:
        async with self._session_factory() as db:
            return await fetch_user_achievements_db(db, user_id)

    async def upsert(
        self,
        user_id: str,
        records: Sequence[UserAchievementRecord],
        is_current: Callable[[], bool] | None = None,
    ) -> None:
        """Upsert *records*; rolls back instead of committing once *is_current* turns False."""
        async with self._session_factory() as db:
            await upsert_user_achievements_db(db, user_id, records)
            if is_current is not None and not is_current():
                await db.rollback()
                logger.debug("Discarded stale achievement upsert for %s", user_id)
                return
            await db.commit()

    async def delete_all(self, user_id: str) -> None:
        async with self._session_factory() as db:
            n = await delete_user_achievements_db(db, user_id)
            await db.commit()
        logger.info("Deleted %d achievement row(s) for %s", n, user_id)
