"""Pydantic schemas for achievement endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AchievementLevelSchema(BaseModel):
    """One level of an achievement with the caller's status on it."""

    level: int
    roman: str
    requirement: float
    label: str
    xp_reward: int
    state: str  # locked | unlocked | claimed
    progress: float = 0.0
    progress_pct: float = 0.0
    unlocked_at: datetime | None = None
    claimed_at: datetime | None = None


class AchievementSchema(BaseModel):
    id: str
    category: str
    category_name: str
    name: str
    description: str
    icon: str
    color: str
    levels: list[AchievementLevelSchema]


class AchievementListResponse(BaseModel):
    """Response for listing all achievements."""

    achievements: list[AchievementSchema]
    unlocked_count: int
    claimed_count: int
    pending_count: int
    total_count: int


class EvaluateRequest(BaseModel):
    """Inputs for one evaluation pass.

    Sessions and stats are accepted as loose dicts (camelCase or snake_case
    keys); malformed numbers are read as 0 rather than rejected.
    """

    sessions: list[dict[str, Any]] = Field(default_factory=list)
    stats: dict[str, Any] | None = None
    streak: int = Field(default=0, ge=0)
    daily_goal: float = Field(default=0.0, ge=0)
    cycle_start: datetime | None = None
    account_created_at: datetime | None = None


class UnlockedLevelSchema(BaseModel):
    achievement_id: str
    name: str
    icon: str
    level: int
    label: str
    xp_reward: int
    unlocked_at: datetime | None = None


class EvaluateResponse(BaseModel):
    newly_unlocked: list[UnlockedLevelSchema]
    pending_count: int


class PendingRewardsResponse(BaseModel):
    """Unlocked-but-unclaimed levels, most recent first."""

    pending: list[UnlockedLevelSchema]
    count: int


class ClaimResponse(BaseModel):
    achievement_id: str
    level: int
    claimed: bool
    xp_reward: int


class NotificationSchema(BaseModel):
    kind: str
    achievement_id: str
    level: int
    title: str
    message: str
    icon: str
    xp_reward: int
    created_at: datetime


class NotificationsResponse(BaseModel):
    notifications: list[NotificationSchema]


class XPRequest(BaseModel):
    sessions: list[dict[str, Any]] = Field(default_factory=list)
    streak: int = Field(default=0, ge=0)


class RankSchema(BaseModel):
    name: str
    min_xp: int
    max_xp: int | None = None  # None for the unbounded top rank
    color: str


class BadgeSchema(BaseModel):
    id: str
    name: str
    description: str
    unlocked: bool


class XPStateResponse(BaseModel):
    total_xp: int
    rank: RankSchema
    tier: int
    display_name: str
    progress_pct: float
    xp_to_next: int
    current_rank_xp: int
    next_rank: RankSchema | None = None
    badges: list[BadgeSchema]


class XPGrantSchema(BaseModel):
    amount: int
    reason: str
    icon: str
    is_bonus: bool
    granted_at: datetime


class XPGrantsResponse(BaseModel):
    grants: list[XPGrantSchema]
    total: int
