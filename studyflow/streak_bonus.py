"""Streak bonus: one-time XP for every 7-day multiple a streak crosses."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

STREAK_BONUS_XP = 50
STREAK_BONUS_PERIOD_DAYS = 7
FLAG_RETENTION = timedelta(days=30)


@dataclass
class StreakBonusLedger:
    """Award flags keyed by streak multiple (7, 14, ...), each with its award time."""

    flags: dict[int, datetime] = field(default_factory=dict)

    def is_flagged(self, multiple: int) -> bool:
        return multiple in self.flags

    def flag(self, multiple: int, when: datetime) -> None:
        self.flags[multiple] = when

    def prune(self, now: datetime, retention: timedelta = FLAG_RETENTION) -> list[int]:
        """Drop flags awarded more than *retention* ago; return the dropped multiples."""
        cutoff = now - retention
        stale = [m for m, awarded in self.flags.items() if awarded < cutoff]
        for multiple in stale:
            del self.flags[multiple]
        return stale

    def clear(self) -> None:
        self.flags.clear()


# (amount, reason) -> None
BonusGrant = Callable[[int, str], None]


class StreakBonusDetector:
    """Grants the bonus when the streak crosses into a new 7-day multiple.

    ``last_observed`` lives in memory only and starts at 0; the persisted
    ledger is what prevents granting the same multiple twice within the
    retention window, across restarts and streak drops.
    """

    def __init__(
        self,
        ledger: StreakBonusLedger,
        grant: BonusGrant,
        *,
        bonus_xp: int = STREAK_BONUS_XP,
        on_flagged: Callable[[StreakBonusLedger], None] | None = None,
    ) -> None:
        self.ledger = ledger
        self.last_observed = 0
        self._grant = grant
        self._bonus_xp = bonus_xp
        self._on_flagged = on_flagged

    def observe(self, streak: int, now: datetime) -> int | None:
        """Feed the current streak; return the multiple awarded, if any."""
        if streak >= STREAK_BONUS_PERIOD_DAYS and streak > self.last_observed:
            weeks = streak // STREAK_BONUS_PERIOD_DAYS
            last_weeks = self.last_observed // STREAK_BONUS_PERIOD_DAYS
            if weeks <= last_weeks:
                return None

            self.last_observed = streak
            multiple = weeks * STREAK_BONUS_PERIOD_DAYS
            if self.ledger.is_flagged(multiple):
                logger.debug("Streak bonus for %d days already awarded", multiple)
                return None

            self._grant(self._bonus_xp, f"Streak - {multiple} days")
            self.ledger.flag(multiple, now)
            self.ledger.prune(now)
            if self._on_flagged is not None:
                self._on_flagged(self.ledger)
            logger.info("Streak bonus awarded for %d days", multiple)
            return multiple

        if streak < self.last_observed:
            self.last_observed = streak
        return None
