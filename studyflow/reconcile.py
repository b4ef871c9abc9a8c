"""State reconciler: merge freshly computed progress into stored records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime

from studyflow.catalog import Achievement, AchievementLevel, iter_level_instances


@dataclass(frozen=True)
class UserAchievementRecord:
    """Persisted unlock/claim state of one achievement level for one user.

    ``unlocked_at`` and ``claimed_at`` only ever move from None to a
    timestamp; ``progress`` is refreshed on every evaluation pass.
    """

    achievement_id: str
    level: int
    unlocked_at: datetime | None = None
    claimed_at: datetime | None = None
    progress: float = 0.0

    @property
    def key(self) -> tuple[str, int]:
        return (self.achievement_id, self.level)

    @property
    def is_unlocked(self) -> bool:
        return self.unlocked_at is not None

    @property
    def is_claimed(self) -> bool:
        return self.claimed_at is not None

    @property
    def is_pending(self) -> bool:
        """Unlocked but not yet claimed."""
        return self.unlocked_at is not None and self.claimed_at is None


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    records: list[UserAchievementRecord] = field(default_factory=list)
    newly_unlocked: list[tuple[Achievement, AchievementLevel]] = field(default_factory=list)


def reconcile(
    catalog: tuple[Achievement, ...],
    progress_by_level: Mapping[tuple[str, int], float],
    previous_records: Iterable[UserAchievementRecord],
    now: datetime,
) -> ReconcileResult:
    """Merge computed progress with previously stored records.

    Locked levels without a prior record are not materialized.  Existing
    records keep their ``unlocked_at``/``claimed_at`` whatever the new
    progress is; only ``progress`` is refreshed.  Records for ids outside
    *catalog* are dropped.
    """
    previous = {r.key: r for r in previous_records}
    result = ReconcileResult()

    for achievement, level in iter_level_instances(catalog):
        key = (achievement.id, level.level)
        progress = progress_by_level.get(key, 0)
        reached = progress >= level.requirement
        existing = previous.get(key)

        if existing is None:
            if reached:
                result.records.append(
                    UserAchievementRecord(
                        achievement_id=achievement.id,
                        level=level.level,
                        unlocked_at=now,
                        claimed_at=None,
                        progress=progress,
                    )
                )
                result.newly_unlocked.append((achievement, level))
            continue

        if existing.unlocked_at is None and reached:
            result.records.append(replace(existing, unlocked_at=now, progress=progress))
            result.newly_unlocked.append((achievement, level))
            continue

        result.records.append(replace(existing, progress=progress))

    return result

