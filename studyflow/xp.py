"""XP and rank calculation.

Pure functions converting a session log into total XP, a named rank with a
1-3 sub-tier, and progress towards the next rank.  XP here is derived and
never persisted.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import tzinfo

import numpy as np
import pandas as pd

from studyflow.sessions import StudySession, StudyType, dated_rows, sessions_frame

XP_PER_MINUTE = 1
XP_PER_QUESTION = 2
XP_PER_CORRECT = 5

# XP span of one tier inside the unbounded top rank
TOP_RANK_INCREMENT = 10_000


@dataclass(frozen=True)
class RankBracket:
    """A named XP bracket, half-open ``[min_xp, max_xp)``."""

    name: str
    min_xp: int
    max_xp: float  # math.inf for the top rank
    color: str

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.max_xp)


RANKS: tuple[RankBracket, ...] = (
    RankBracket("Iron", 0, 500, "#78716c"),
    RankBracket("Bronze", 500, 1500, "#a16207"),
    RankBracket("Silver", 1500, 3000, "#6b7280"),
    RankBracket("Gold", 3000, 6000, "#eab308"),
    RankBracket("Platinum", 6000, 12000, "#06b6d4"),
    RankBracket("Diamond", 12000, 25000, "#3b82f6"),
    RankBracket("Master", 25000, 50000, "#a855f7"),
    RankBracket("Legend", 50000, math.inf, "#f59e0b"),
)


@dataclass(frozen=True)
class Badge:
    """A simple always-recomputed badge (no levels, no reward)."""

    id: str
    name: str
    description: str
    unlocked: bool


@dataclass(frozen=True)
class XPState:
    """Derived XP summary for a session log."""

    total_xp: int
    rank: RankBracket
    tier: int
    display_name: str
    progress_pct: float
    xp_to_next: int
    current_rank_xp: int
    next_rank: RankBracket | None
    badges: list[Badge] = field(default_factory=list)


def session_xp(session: StudySession) -> int:
    """XP earned by a single session."""
    return (
        math.floor(session.total_minutes) * XP_PER_MINUTE
        + session.answered * XP_PER_QUESTION
        + session.correct * XP_PER_CORRECT
    )


def total_xp(frame: pd.DataFrame) -> int:
    """Sum of per-session XP over a sessions frame."""
    if frame.empty:
        return 0
    per_session = (
        np.floor(frame["total_minutes"].to_numpy()) * XP_PER_MINUTE
        + frame["answered"].to_numpy() * XP_PER_QUESTION
        + frame["correct"].to_numpy() * XP_PER_CORRECT
    )
    return int(per_session.sum())


def rank_for_xp(xp: int) -> tuple[RankBracket, RankBracket | None]:
    """Return (current rank, next rank or None) for an XP total."""
    for i, rank in enumerate(RANKS):
        if rank.min_xp <= xp < rank.max_xp:
            nxt = RANKS[i + 1] if i + 1 < len(RANKS) else None
            return rank, nxt
    return RANKS[-1], None


def tier_for_xp(rank: RankBracket, xp: int) -> int:
    """Sub-tier 1-3 within *rank*."""
    xp_in_rank = xp - rank.min_xp
    if rank.unbounded:
        return min(3, xp_in_rank // TOP_RANK_INCREMENT + 1)
    span = rank.max_xp - rank.min_xp
    return min(3, math.floor(xp_in_rank / span * 3) + 1)


def _badges(frame: pd.DataFrame, streak: int) -> list[Badge]:
    hour = frame["hour"]
    dated = dated_rows(frame)
    daily_hours = (
        dated.groupby("date")["total_hours"].sum()
        if not dated.empty
        else pd.Series(dtype="float64")
    )
    questions = frame[frame["type"] == StudyType.QUESTIONS.value]
    perfect_ten = (questions["answered"] >= 10) & (questions["correct"] == questions["answered"])
    return [
        Badge("unbreakable", "Unbreakable", "Keep a 7-day study streak", streak >= 7),
        Badge(
            "owl",
            "Owl",
            "Study between 11pm and 4am",
            bool(((hour >= 23) | (hour < 4)).any()),
        ),
        Badge("dawn", "Dawn", "Study between 4am and 6am", bool(hour.between(4, 5).any())),
        Badge(
            "marathon",
            "Marathoner",
            "Study more than 4 hours in a single day",
            bool((daily_hours > 4).any()),
        ),
        Badge(
            "sniper",
            "Sniper",
            "Score 100% in a session with at least 10 questions",
            bool(perfect_ten.any()),
        ),
        Badge(
            "skull",
            "Skull",
            "Study on a weekend (Saturday or Sunday)",
            bool(frame["weekday"].isin([5.0, 6.0]).any()),
        ),
    ]


def calculate_xp_state(
    sessions: Sequence[StudySession],
    streak: int = 0,
    tz: tzinfo | None = None,
) -> XPState:
    """Compute total XP, rank, tier and progress for a session log."""
    frame = sessions_frame(sessions, tz)
    xp = total_xp(frame)
    rank, next_rank = rank_for_xp(xp)
    tier = tier_for_xp(rank, xp)
    xp_in_rank = xp - rank.min_xp

    if next_rank is not None:
        xp_to_next = next_rank.min_xp - xp
        needed = next_rank.min_xp - rank.min_xp
        progress = min(100.0, max(0.0, xp_in_rank / needed * 100))
    else:
        into_increment = xp_in_rank % TOP_RANK_INCREMENT
        progress = min(100.0, into_increment / TOP_RANK_INCREMENT * 100)
        xp_to_next = TOP_RANK_INCREMENT - into_increment

    display_name = f"{rank.name} {tier}" if tier > 1 else rank.name
    return XPState(
        total_xp=xp,
        rank=rank,
        tier=tier,
        display_name=display_name,
        progress_pct=progress,
        xp_to_next=xp_to_next,
        current_rank_xp=xp_in_rank,
        next_rank=next_rank,
        badges=_badges(frame, streak),
    )
