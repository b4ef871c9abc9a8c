"""Progress calculator: one numeric progress value per achievement level.

Each achievement family has its own formula.  Aggregate stats, when a field
is present, take precedence over summing the session list because the list
handed to us may be paginated or truncated; summing it can undercount, and
that is accepted rather than corrected here.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, tzinfo

import pandas as pd

from studyflow.catalog import ACHIEVEMENTS, Achievement, AchievementLevel, iter_level_instances
from studyflow.sessions import (
    AggregateStats,
    StudySession,
    StudyType,
    coerce_int,
    coerce_number,
    dated_rows,
    sessions_frame,
)

# Minimum answered questions before sniper accuracy counts, per level
SNIPER_MIN_QUESTIONS: dict[int, int] = {1: 100, 2: 500, 3: 1000}

# Daily-goal multipliers for the goals family
GOAL_FACTORS: dict[str, float] = {
    "achiever": 1.0,
    "over-achiever": 1.5,
    "overcoming": 2.0,
}

# Cycle age treated as "one cycle completed"
CYCLE_COMPLETE_DAYS = 30

EARLY_BIRD_HOURS = (5, 7)  # inclusive, i.e. 05:00-07:59
NIGHT_OWL_START_HOUR = 22
NIGHT_OWL_END_HOUR = 2  # exclusive, i.e. until 01:59


@dataclass
class ProgressInputs:
    """Everything an evaluation pass reads."""

    sessions: Sequence[StudySession] = field(default_factory=list)
    stats: AggregateStats | None = None
    streak: int = 0
    daily_goal: float = 0.0
    cycle_start: datetime | None = None
    account_created_at: datetime | None = None


@dataclass
class _Context:
    inputs: ProgressInputs
    frame: pd.DataFrame
    now: datetime


ProgressFn = Callable[[_Context, AchievementLevel], int]


def _whole_days_since(then: datetime, now: datetime) -> int:
    """Whole days elapsed from *then* to *now* (naive values are taken as UTC)."""
    if then.tzinfo is None and now.tzinfo is not None:
        then = then.replace(tzinfo=UTC)
    elif then.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return math.floor((now - then).total_seconds() / 86400)


# ---------------------------------------------------------------------------
# Family formulas
# ---------------------------------------------------------------------------


def _streak(ctx: _Context, level: AchievementLevel) -> int:
    return coerce_int(ctx.inputs.streak)


def _hours(ctx: _Context, level: AchievementLevel) -> int:
    stats = ctx.inputs.stats
    if stats is not None and stats.total_minutes is not None:
        return math.floor(coerce_number(stats.total_minutes) / 60)
    return math.floor(float(ctx.frame["total_hours"].sum()))


def _question_rows(frame: pd.DataFrame) -> pd.DataFrame:
    return frame[frame["type"] == StudyType.QUESTIONS.value]


def _correct_answers(ctx: _Context, level: AchievementLevel) -> int:
    stats = ctx.inputs.stats
    if stats is not None and stats.total_correct is not None:
        return coerce_int(stats.total_correct)
    return int(_question_rows(ctx.frame)["correct"].sum())


def _perfect_sessions(ctx: _Context, level: AchievementLevel) -> int:
    frame = _question_rows(ctx.frame)
    perfect = (frame["answered"] > 0) & (frame["correct"] == frame["answered"])
    return int(perfect.sum())


def _accuracy(ctx: _Context, level: AchievementLevel) -> int:
    """Overall accuracy percentage, gated on a per-level minimum volume."""
    stats = ctx.inputs.stats
    if stats is not None and stats.total_correct is not None and stats.total_questions is not None:
        correct = coerce_int(stats.total_correct)
        total = coerce_int(stats.total_questions)
    else:
        questions = _question_rows(ctx.frame)
        correct = int(questions["correct"].sum())
        total = int(questions["answered"].sum())

    if total == 0:
        return 0
    if total < SNIPER_MIN_QUESTIONS.get(level.level, 0):
        return 0
    return math.floor(correct / total * 100)


def _theory_pages(ctx: _Context, level: AchievementLevel) -> int:
    stats = ctx.inputs.stats
    if stats is not None and stats.total_pages is not None:
        return coerce_int(stats.total_pages)
    frame = ctx.frame
    return int(frame.loc[frame["type"] == StudyType.THEORY.value, "pages"].sum())


def _distinct_subjects(ctx: _Context, level: AchievementLevel) -> int:
    return int(ctx.frame["subject_id"].nunique())


def _multi_subject_days(ctx: _Context, level: AchievementLevel) -> int:
    """Days whose distinct-subject count reaches the level's requirement."""
    dated = dated_rows(ctx.frame)
    if dated.empty:
        return 0
    per_day = dated.groupby("date")["subject_id"].nunique()
    return int((per_day >= level.requirement).sum())


def _early_days(ctx: _Context, level: AchievementLevel) -> int:
    dated = dated_rows(ctx.frame)
    start, end = EARLY_BIRD_HOURS
    return int(dated.loc[dated["hour"].between(start, end), "date"].nunique())


def _night_days(ctx: _Context, level: AchievementLevel) -> int:
    dated = dated_rows(ctx.frame)
    hour = dated["hour"]
    mask = (hour >= NIGHT_OWL_START_HOUR) | (hour < NIGHT_OWL_END_HOUR)
    return int(dated.loc[mask, "date"].nunique())


def _weekends(ctx: _Context, level: AchievementLevel) -> int:
    return int(ctx.frame["weekend_key"].nunique())


def _goal_days(factor: float) -> ProgressFn:
    def _count(ctx: _Context, level: AchievementLevel) -> int:
        goal = coerce_number(ctx.inputs.daily_goal)
        if goal <= 0:
            return 0
        dated = dated_rows(ctx.frame)
        if dated.empty:
            return 0
        per_day = dated.groupby("date")["goal_minutes"].sum()
        return int((per_day >= goal * factor).sum())

    return _count


def _log_count(ctx: _Context, level: AchievementLevel) -> int:
    stats = ctx.inputs.stats
    if stats is not None and stats.total_logs is not None:
        return coerce_int(stats.total_logs)
    return len(ctx.inputs.sessions)


def _completed_cycles(ctx: _Context, level: AchievementLevel) -> int:
    # Coarse proxy: a cycle running for CYCLE_COMPLETE_DAYS counts as one
    # completed cycle.  Not a check against per-subject cycle goals.
    start = ctx.inputs.cycle_start
    if start is None:
        return 0
    return 1 if _whole_days_since(start, ctx.now) >= CYCLE_COMPLETE_DAYS else 0


def _account_age_days(ctx: _Context, level: AchievementLevel) -> int:
    created = ctx.inputs.account_created_at
    if created is None:
        return 0
    return max(0, _whole_days_since(created, ctx.now))


_FORMULAS: dict[str, ProgressFn] = {
    "streak-fire": _streak,
    "unbreakable": _streak,
    "machine": _streak,
    "marathon": _hours,
    "workaholic": _hours,
    "eternal-student": _hours,
    "shooter": _correct_answers,
    "perfectionist": _perfect_sessions,
    "sniper": _accuracy,
    "reader": _theory_pages,
    "devourer": _theory_pages,
    "library": _theory_pages,
    "multitask": _distinct_subjects,
    "polymath": _distinct_subjects,
    "renaissance": _multi_subject_days,
    "early-bird": _early_days,
    "night-owl": _night_days,
    "weekend-warrior": _weekends,
    **{aid: _goal_days(factor) for aid, factor in GOAL_FACTORS.items()},
    "first-step": _log_count,
    "cycle-master": _completed_cycles,
    "veteran": _account_age_days,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _context(inputs: ProgressInputs, now: datetime | None, tz: tzinfo | None) -> _Context:
    return _Context(
        inputs=inputs,
        frame=sessions_frame(inputs.sessions, tz),
        now=now if now is not None else datetime.now(UTC),
    )


def _evaluate(ctx: _Context, achievement: Achievement, level: AchievementLevel) -> int:
    formula = _FORMULAS.get(achievement.id)
    if formula is None:
        return 0
    return max(0, formula(ctx, level))


def calculate_progress(
    achievement: Achievement,
    level: AchievementLevel,
    sessions: Sequence[StudySession],
    stats: AggregateStats | None,
    streak: int,
    daily_goal: float,
    cycle_start: datetime | None,
    account_created_at: datetime | None = None,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> int:
    """Progress of a single achievement level (always >= 0).

    Unknown achievement ids yield 0.
    """
    inputs = ProgressInputs(
        sessions=sessions,
        stats=stats,
        streak=streak,
        daily_goal=daily_goal,
        cycle_start=cycle_start,
        account_created_at=account_created_at,
    )
    return _evaluate(_context(inputs, now, tz), achievement, level)


def compute_progress(
    inputs: ProgressInputs,
    catalog: tuple[Achievement, ...] = ACHIEVEMENTS,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> dict[tuple[str, int], int]:
    """Progress for every level-instance in *catalog*, keyed by (id, level).

    The session frame is built once and shared by all formulas.
    """
    ctx = _context(inputs, now, tz)
    return {
        (achievement.id, level.level): _evaluate(ctx, achievement, level)
        for achievement, level in iter_level_instances(catalog)
    }
