"""Achievement catalog: 24 achievements, three escalating levels each."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum


class Category(StrEnum):
    """Achievement families, each with its own progress formula."""

    CONSISTENCY = "consistency"
    VOLUME = "volume"
    ACCURACY = "accuracy"
    READING = "reading"
    DIVERSITY = "diversity"
    SCHEDULE = "schedule"
    GOALS = "goals"
    MILESTONES = "milestones"


@dataclass(frozen=True, slots=True)
class AchievementLevel:
    """One of the three thresholds (I/II/III) of an achievement."""

    level: int
    requirement: float
    label: str
    xp_reward: int


@dataclass(frozen=True, slots=True)
class Achievement:
    """A named gamification goal with three escalating levels."""

    id: str
    category: Category
    name: str
    description: str
    icon: str
    color: str
    levels: tuple[AchievementLevel, AchievementLevel, AchievementLevel]

    def level(self, number: int) -> AchievementLevel | None:
        """Return the level with the given number, or None."""
        for lvl in self.levels:
            if lvl.level == number:
                return lvl
        return None


def _levels(
    *specs: tuple[float, str, int],
) -> tuple[AchievementLevel, AchievementLevel, AchievementLevel]:
    """Build the ordered level tuple from (requirement, label, xp) triples."""
    first, second, third = (
        AchievementLevel(level=i, requirement=req, label=label, xp_reward=xp)
        for i, (req, label, xp) in enumerate(specs, start=1)
    )
    return first, second, third


ACHIEVEMENTS: tuple[Achievement, ...] = (
    # Consistency
    Achievement(
        id="streak-fire",
        category=Category.CONSISTENCY,
        name="Streak",
        description="Study on consecutive days without missing one",
        icon="flame",
        color="text-orange-500",
        levels=_levels((7, "7 days", 150), (30, "30 days", 300), (100, "100 days", 500)),
    ),
    Achievement(
        id="unbreakable",
        category=Category.CONSISTENCY,
        name="Unbreakable",
        description="Keep a solid study routine",
        icon="shield",
        color="text-purple-500",
        levels=_levels((14, "14 days", 150), (60, "60 days", 300), (200, "200 days", 500)),
    ),
    Achievement(
        id="machine",
        category=Category.CONSISTENCY,
        name="Machine",
        description="Robotic consistency in your studies",
        icon="cpu",
        color="text-blue-500",
        levels=_levels((21, "21 days", 150), (90, "90 days", 300), (365, "365 days", 500)),
    ),
    # Volume (hours)
    Achievement(
        id="marathon",
        category=Category.VOLUME,
        name="Marathoner",
        description="Accumulate study hours",
        icon="activity",
        color="text-emerald-500",
        levels=_levels((10, "10 hours", 100), (100, "100 hours", 250), (500, "500 hours", 400)),
    ),
    Achievement(
        id="workaholic",
        category=Category.VOLUME,
        name="Workaholic",
        description="Intense study volume",
        icon="briefcase",
        color="text-gray-700",
        levels=_levels((50, "50 hours", 100), (250, "250 hours", 250), (1000, "1000 hours", 400)),
    ),
    Achievement(
        id="eternal-student",
        category=Category.VOLUME,
        name="Eternal Student",
        description="Absolute dedication to studying",
        icon="book-open",
        color="text-blue-600",
        levels=_levels(
            (100, "100 hours", 100), (500, "500 hours", 250), (2000, "2000 hours", 400)
        ),
    ),
    # Accuracy (questions)
    Achievement(
        id="shooter",
        category=Category.ACCURACY,
        name="Shooter",
        description="Answer questions correctly, consistently",
        icon="target",
        color="text-red-500",
        levels=_levels(
            (100, "100 correct", 100), (500, "500 correct", 200), (2000, "2000 correct", 400)
        ),
    ),
    Achievement(
        id="perfectionist",
        category=Category.ACCURACY,
        name="Perfectionist",
        description="Sessions with 100% correct answers",
        icon="sparkles",
        color="text-yellow-500",
        levels=_levels(
            (50, "50 perfect sessions", 150),
            (200, "200 perfect sessions", 300),
            (500, "500 perfect sessions", 500),
        ),
    ),
    Achievement(
        id="sniper",
        category=Category.ACCURACY,
        name="Sniper",
        description="High overall accuracy",
        icon="crosshair",
        color="text-indigo-600",
        levels=_levels(
            (90, "90% accuracy (100q)", 150),
            (95, "95% accuracy (500q)", 300),
            (98, "98% accuracy (1000q)", 500),
        ),
    ),
    # Reading (pages)
    Achievement(
        id="reader",
        category=Category.READING,
        name="Reader",
        description="Read theory pages",
        icon="book",
        color="text-amber-700",
        levels=_levels((100, "100 pages", 100), (500, "500 pages", 200), (2000, "2000 pages", 400)),
    ),
    Achievement(
        id="devourer",
        category=Category.READING,
        name="Devourer",
        description="Consume theory intensely",
        icon="book-marked",
        color="text-green-700",
        levels=_levels(
            (500, "500 pages", 100), (2000, "2000 pages", 250), (10000, "10000 pages", 400)
        ),
    ),
    Achievement(
        id="library",
        category=Category.READING,
        name="Library",
        description="Accumulate theoretical knowledge",
        icon="library",
        color="text-purple-600",
        levels=_levels(
            (1000, "1000 pages", 100), (5000, "5000 pages", 250), (20000, "20000 pages", 400)
        ),
    ),
    # Diversity (subjects)
    Achievement(
        id="multitask",
        category=Category.DIVERSITY,
        name="Multitasker",
        description="Study a variety of subjects",
        icon="layers",
        color="text-pink-500",
        levels=_levels((3, "3 subjects", 100), (6, "6 subjects", 200), (12, "12 subjects", 300)),
    ),
    Achievement(
        id="polymath",
        category=Category.DIVERSITY,
        name="Polymath",
        description="Master multiple areas",
        icon="brain",
        color="text-pink-500",
        levels=_levels((5, "5 subjects", 100), (10, "10 subjects", 200), (20, "20 subjects", 300)),
    ),
    Achievement(
        id="renaissance",
        category=Category.DIVERSITY,
        name="Renaissance",
        description="Study many subjects on the same day",
        icon="palette",
        color="text-violet-500",
        levels=_levels(
            (5, "5 subjects/day (7 days)", 150),
            (8, "8 subjects/day (7 days)", 250),
            (12, "12 subjects/day (7 days)", 400),
        ),
    ),
    # Schedule
    Achievement(
        id="early-bird",
        category=Category.SCHEDULE,
        name="Early Bird",
        description="Study early in the morning",
        icon="sunrise",
        color="text-orange-400",
        levels=_levels(
            (7, "7 days (5am-8am)", 100),
            (30, "30 days (5am-8am)", 200),
            (100, "100 days (5am-8am)", 300),
        ),
    ),
    Achievement(
        id="night-owl",
        category=Category.SCHEDULE,
        name="Night Owl",
        description="Study late at night",
        icon="moon",
        color="text-indigo-800",
        levels=_levels(
            (7, "7 days (10pm-2am)", 100),
            (30, "30 days (10pm-2am)", 200),
            (100, "100 days (10pm-2am)", 300),
        ),
    ),
    Achievement(
        id="weekend-warrior",
        category=Category.SCHEDULE,
        name="Weekend Warrior",
        description="Study on weekends",
        icon="skull",
        color="text-gray-800",
        levels=_levels(
            (1, "1 weekend", 150), (10, "10 weekends", 300), (50, "50 weekends", 500)
        ),
    ),
    # Goals
    Achievement(
        id="achiever",
        category=Category.GOALS,
        name="Achiever",
        description="Hit your daily goal",
        icon="check-circle-2",
        color="text-emerald-600",
        levels=_levels(
            (7, "7 goals met", 100), (30, "30 goals met", 250), (100, "100 goals met", 400)
        ),
    ),
    Achievement(
        id="over-achiever",
        category=Category.GOALS,
        name="Over Achiever",
        description="Exceed 150% of your daily goal",
        icon="rocket",
        color="text-blue-600",
        levels=_levels(
            (7, "7 days above 150%", 150),
            (30, "30 days above 150%", 300),
            (100, "100 days above 150%", 500),
        ),
    ),
    Achievement(
        id="overcoming",
        category=Category.GOALS,
        name="Overcoming",
        description="Exceed 200% of your daily goal",
        icon="zap",
        color="text-yellow-600",
        levels=_levels(
            (1, "1 day above 200%", 200),
            (10, "10 days above 200%", 400),
            (50, "50 days above 200%", 500),
        ),
    ),
    # Milestones
    Achievement(
        id="first-step",
        category=Category.MILESTONES,
        name="First Step",
        description="Log your first study sessions",
        icon="footprints",
        color="text-green-400",
        levels=_levels((1, "1 log", 50), (10, "10 logs", 100), (100, "100 logs", 200)),
    ),
    Achievement(
        id="cycle-master",
        category=Category.MILESTONES,
        name="Cycle Master",
        description="Complete study cycles",
        icon="refresh-cw",
        color="text-emerald-500",
        levels=_levels(
            (1, "1 full cycle", 100), (5, "5 full cycles", 250), (20, "20 full cycles", 400)
        ),
    ),
    Achievement(
        id="veteran",
        category=Category.MILESTONES,
        name="Veteran",
        description="Time spent using StudyFlow",
        icon="award",
        color="text-amber-500",
        levels=_levels(
            (30, "30 days in the app", 100),
            (90, "90 days in the app", 300),
            (365, "365 days in the app", 500),
        ),
    ),
)

CATEGORY_ORDER: tuple[Category, ...] = tuple(Category)

_CATEGORY_NAMES: dict[Category, str] = {
    Category.CONSISTENCY: "Consistency",
    Category.VOLUME: "Study Volume",
    Category.ACCURACY: "Question Accuracy",
    Category.READING: "Reading",
    Category.DIVERSITY: "Diversity",
    Category.SCHEDULE: "Schedule",
    Category.GOALS: "Goals",
    Category.MILESTONES: "Milestones",
}

_ROMAN = {1: "I", 2: "II", 3: "III"}

_BY_ID: dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}

TOTAL_LEVELS = sum(len(a.levels) for a in ACHIEVEMENTS)


def get_achievement(achievement_id: str) -> Achievement | None:
    """Look up an achievement by id."""
    return _BY_ID.get(achievement_id)


def get_level(achievement_id: str, level: int) -> tuple[Achievement, AchievementLevel] | None:
    """Look up an (achievement, level) pair, or None if either is unknown."""
    achievement = _BY_ID.get(achievement_id)
    if achievement is None:
        return None
    lvl = achievement.level(level)
    if lvl is None:
        return None
    return achievement, lvl


def iter_level_instances(
    catalog: tuple[Achievement, ...] = ACHIEVEMENTS,
) -> Iterator[tuple[Achievement, AchievementLevel]]:
    """Yield every (achievement, level) pair in catalog order."""
    for achievement in catalog:
        for lvl in achievement.levels:
            yield achievement, lvl


def claim_key(achievement_id: str, level: int) -> str:
    """Key identifying one achievement level, e.g. ``"sniper-2"``."""
    return f"{achievement_id}-{level}"


def category_name(category: Category) -> str:
    """Human-readable category name."""
    return _CATEGORY_NAMES.get(category, str(category))


def level_roman(level: int) -> str:
    """Roman numeral for an achievement level (1 -> "I")."""
    return _ROMAN.get(level, str(level))
