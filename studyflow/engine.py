"""Achievement engine: evaluation, reward claims and reset for one identity.

The engine owns the in-memory records, composes the calculators with the
persistence gateway, and talks to two injected collaborators: an XP ledger
that receives grants and a notification dispatcher that receives unlock and
claim events.  Evaluation and claim are synchronous; only loading and reset
suspend.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, tzinfo
from enum import StrEnum
from typing import Protocol

from studyflow.catalog import (
    ACHIEVEMENTS,
    Achievement,
    AchievementLevel,
    claim_key,
    iter_level_instances,
)
from studyflow.leases import KeyedLeases
from studyflow.persistence import AchievementGateway
from studyflow.progress import ProgressInputs, compute_progress
from studyflow.reconcile import UserAchievementRecord, reconcile
from studyflow.sessions import StudySession
from studyflow.streak_bonus import STREAK_BONUS_XP, StreakBonusDetector, StreakBonusLedger
from studyflow.xp import XPState, calculate_xp_state

logger = logging.getLogger(__name__)

STREAK_BONUS_ICON = "flame"


class XPLedger(Protocol):
    def grant(self, amount: int, reason: str, icon: str, is_bonus: bool) -> None: ...


class NotificationDispatcher(Protocol):
    def achievement_unlocked(self, achievement: Achievement, level: AchievementLevel) -> None: ...

    def reward_claimed(self, achievement: Achievement, level: AchievementLevel) -> None: ...


class LevelState(StrEnum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    CLAIMED = "claimed"


@dataclass(frozen=True)
class LevelStatus:
    """Display view of one level-instance: state plus live progress."""

    achievement: Achievement
    level: AchievementLevel
    state: LevelState
    progress: float
    unlocked_at: datetime | None = None
    claimed_at: datetime | None = None

    @property
    def progress_pct(self) -> float:
        if self.level.requirement <= 0:
            return 100.0
        return min(100.0, self.progress / self.level.requirement * 100)


ResetHook = Callable[[], Awaitable[None] | None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AchievementEngine:
    def __init__(
        self,
        gateway: AchievementGateway,
        *,
        identity: str | None = None,
        catalog: tuple[Achievement, ...] = ACHIEVEMENTS,
        xp_ledger: XPLedger | None = None,
        notifier: NotificationDispatcher | None = None,
        on_reset: ResetHook | None = None,
        clock: Callable[[], datetime] = _utcnow,
        streak_bonus_xp: int = STREAK_BONUS_XP,
        tz: tzinfo | None = None,
    ) -> None:
        self.identity = identity
        self.catalog = catalog
        self._gateway = gateway
        self._xp_ledger = xp_ledger
        self._notifier = notifier
        self._on_reset = on_reset
        self._clock = clock
        self._tz = tz

        self._by_id = {a.id: a for a in catalog}
        self._records: dict[tuple[str, int], UserAchievementRecord] = {}
        self._progress: dict[tuple[str, int], int] = {}
        self._notified: set[str] = set()
        self._leases = KeyedLeases()
        self._loaded = False
        self._reset_done = False

        self._bonus_ledger = StreakBonusLedger()
        self._streak_detector = StreakBonusDetector(
            self._bonus_ledger,
            self._grant_streak_bonus,
            bonus_xp=streak_bonus_xp,
            on_flagged=self._save_bonus_flags,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def locked(self) -> bool:
        return self._gateway.locked

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        """Load stored records and streak-bonus flags for the identity."""
        if self.locked:
            return
        records = await self._gateway.load(self.identity)
        if self.locked:
            return
        self._records = {r.key: r for r in records if r.achievement_id in self._by_id}
        self._bonus_ledger.flags = self._gateway.load_bonus_flags(self.identity)
        self._loaded = True
        logger.info(
            "Loaded %d achievement records for %s",
            len(self._records),
            self.identity or "anonymous user",
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, inputs: ProgressInputs) -> list[tuple[Achievement, AchievementLevel]]:
        """Run one evaluation pass and return the levels unlocked by it.

        Does nothing while a reset is in progress or before ``load()``.
        """
        if self.locked:
            logger.debug("Skipping achievement evaluation during reset")
            return []
        if not self._loaded:
            logger.debug("Skipping achievement evaluation before records are loaded")
            return []

        now = self._clock()
        progress = compute_progress(inputs, self.catalog, now=now, tz=self._tz)
        previous = list(self._records.values())
        result = reconcile(self.catalog, progress, previous, now)

        self._progress = progress
        if result.records != previous:
            self._records = {r.key: r for r in result.records}
            self._persist()

        self._observe_streak(inputs.streak, now)

        for achievement, level in result.newly_unlocked:
            key = claim_key(achievement.id, level.level)
            if key in self._notified:
                continue
            self._notified.add(key)
            logger.info("Achievement unlocked: %s", key)
            self._notify("achievement_unlocked", achievement, level)

        return result.newly_unlocked

    def _observe_streak(self, streak: int, now: datetime) -> None:
        try:
            self._streak_detector.observe(int(streak), now)
        except Exception:
            logger.warning("Streak bonus grant failed", exc_info=True)

    def _grant_streak_bonus(self, amount: int, reason: str) -> None:
        if self._xp_ledger is not None:
            self._xp_ledger.grant(amount, reason, STREAK_BONUS_ICON, True)

    def _save_bonus_flags(self, ledger: StreakBonusLedger) -> None:
        self._gateway.save_bonus_flags(self.identity, ledger.flags)

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    def claim(self, achievement_id: str, level: int) -> bool:
        """Claim the reward of an unlocked level.

        Returns True only for the call that actually granted the reward.
        Duplicate, overlapping and re-entrant calls return False.
        """
        if self.locked:
            return False

        key = claim_key(achievement_id, level)
        if self._leases.is_held(key):
            return False

        achievement = self._by_id.get(achievement_id)
        lvl = achievement.level(level) if achievement is not None else None
        record = self._records.get((achievement_id, level))
        if lvl is None or record is None or not record.is_unlocked or record.is_claimed:
            return False

        with self._leases.hold(key) as acquired:
            if not acquired:
                return False
            current = self._records.get((achievement_id, level))
            if current is None or current.is_claimed:
                return False

            if self._xp_ledger is not None:
                try:
                    self._xp_ledger.grant(
                        lvl.xp_reward, f"{achievement.name} - {lvl.label}", achievement.icon, True
                    )
                except Exception:
                    logger.warning("XP grant failed for %s, claim aborted", key, exc_info=True)
                    return False

            if self.locked:
                return False
            self._records[(achievement_id, level)] = replace(current, claimed_at=self._clock())
            self._persist()
            logger.info("Achievement reward claimed: %s (+%d XP)", key, lvl.xp_reward)
            self._notify("reward_claimed", achievement, lvl)
            return True

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    async def reset(self) -> None:
        """Wipe all achievement state for the identity and lock the engine.

        The gateway lock is raised before anything else, so evaluations,
        claims and saves queued behind this call become no-ops.  The
        ``on_reset`` hook runs once, after the stores are cleared.
        """
        self._records.clear()
        self._progress.clear()
        self._notified.clear()
        self._bonus_ledger.clear()
        await self._gateway.reset(self.identity)

        if self._reset_done:
            return
        self._reset_done = True
        logger.info("Achievements reset for %s", self.identity or "anonymous user")
        if self._on_reset is None:
            return
        try:
            result = self._on_reset()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("on_reset hook failed", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def records(self) -> list[UserAchievementRecord]:
        return list(self._records.values())

    def record(self, achievement_id: str, level: int) -> UserAchievementRecord | None:
        return self._records.get((achievement_id, level))

    def pending(self) -> list[UserAchievementRecord]:
        """Unlocked but unclaimed records, most recently unlocked first."""
        pending = [r for r in self._records.values() if r.is_pending]
        pending.sort(key=lambda r: r.unlocked_at, reverse=True)
        return pending

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self._records.values() if r.is_pending)

    @property
    def unlocked_count(self) -> int:
        return sum(1 for r in self._records.values() if r.is_unlocked)

    @property
    def claimed_count(self) -> int:
        return sum(1 for r in self._records.values() if r.is_claimed)

    @property
    def total_count(self) -> int:
        return sum(len(a.levels) for a in self.catalog)

    def user_progress(self, achievement_id: str) -> list[UserAchievementRecord]:
        return sorted(
            (r for r in self._records.values() if r.achievement_id == achievement_id),
            key=lambda r: r.level,
        )

    def level_statuses(self) -> list[LevelStatus]:
        statuses: list[LevelStatus] = []
        for achievement, level in iter_level_instances(self.catalog):
            key = (achievement.id, level.level)
            record = self._records.get(key)
            progress = self._progress.get(key, record.progress if record is not None else 0)
            if record is not None and record.is_claimed:
                state = LevelState.CLAIMED
            elif record is not None and record.is_unlocked:
                state = LevelState.UNLOCKED
            else:
                state = LevelState.LOCKED
            statuses.append(
                LevelStatus(
                    achievement=achievement,
                    level=level,
                    state=state,
                    progress=progress,
                    unlocked_at=record.unlocked_at if record is not None else None,
                    claimed_at=record.claimed_at if record is not None else None,
                )
            )
        return statuses

    def xp_state(self, sessions: Sequence[StudySession], streak: int = 0) -> XPState:
        return calculate_xp_state(sessions, streak, self._tz)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        self._gateway.save(self.identity, list(self._records.values()))

    def _notify(self, event: str, achievement: Achievement, level: AchievementLevel) -> None:
        if self._notifier is None:
            return
        try:
            getattr(self._notifier, event)(achievement, level)
        except Exception:
            logger.warning("Notification %s failed for %s", event, achievement.id, exc_info=True)
