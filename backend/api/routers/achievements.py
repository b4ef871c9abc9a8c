"""Achievement endpoints."""

from __future__ import annotations

import math
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response

from studyflow.catalog import category_name, get_level, level_roman
from studyflow.engine import AchievementEngine, LevelStatus
from studyflow.progress import ProgressInputs
from studyflow.reconcile import UserAchievementRecord
from studyflow.sessions import session_from_dict, stats_from_dict
from studyflow.xp import RankBracket

from backend.api.config import Settings
from backend.api.dependencies import (
    AuthenticatedUser,
    get_current_user,
    get_engine,
    get_settings,
)
from backend.api.schemas.achievement import (
    AchievementLevelSchema,
    AchievementListResponse,
    AchievementSchema,
    BadgeSchema,
    ClaimResponse,
    EvaluateRequest,
    EvaluateResponse,
    NotificationSchema,
    NotificationsResponse,
    PendingRewardsResponse,
    RankSchema,
    UnlockedLevelSchema,
    XPGrantSchema,
    XPGrantsResponse,
    XPRequest,
    XPStateResponse,
)
from backend.api.services.engine_registry import EngineRegistry, get_engine_registry

router = APIRouter()


def _identity(user: AuthenticatedUser | None) -> str | None:
    return user.user_id if user else None


def _unlocked_schema(record: UserAchievementRecord) -> UnlockedLevelSchema | None:
    found = get_level(record.achievement_id, record.level)
    if found is None:
        return None
    achievement, level = found
    return UnlockedLevelSchema(
        achievement_id=achievement.id,
        name=achievement.name,
        icon=achievement.icon,
        level=level.level,
        label=level.label,
        xp_reward=level.xp_reward,
        unlocked_at=record.unlocked_at,
    )


def _level_schema(status: LevelStatus) -> AchievementLevelSchema:
    return AchievementLevelSchema(
        level=status.level.level,
        roman=level_roman(status.level.level),
        requirement=status.level.requirement,
        label=status.level.label,
        xp_reward=status.level.xp_reward,
        state=status.state.value,
        progress=status.progress,
        progress_pct=status.progress_pct,
        unlocked_at=status.unlocked_at,
        claimed_at=status.claimed_at,
    )


def _rank_schema(rank: RankBracket) -> RankSchema:
    return RankSchema(
        name=rank.name,
        min_xp=rank.min_xp,
        max_xp=None if math.isinf(rank.max_xp) else int(rank.max_xp),
        color=rank.color,
    )


@router.get("", response_model=AchievementListResponse)
async def list_achievements(
    engine: Annotated[AchievementEngine, Depends(get_engine)],
) -> AchievementListResponse:
    """Return every achievement with per-level status and live progress."""
    grouped: dict[str, AchievementSchema] = {}
    for status in engine.level_statuses():
        achievement = status.achievement
        schema = grouped.get(achievement.id)
        if schema is None:
            schema = AchievementSchema(
                id=achievement.id,
                category=achievement.category.value,
                category_name=category_name(achievement.category),
                name=achievement.name,
                description=achievement.description,
                icon=achievement.icon,
                color=achievement.color,
                levels=[],
            )
            grouped[achievement.id] = schema
        schema.levels.append(_level_schema(status))

    return AchievementListResponse(
        achievements=list(grouped.values()),
        unlocked_count=engine.unlocked_count,
        claimed_count=engine.claimed_count,
        pending_count=engine.pending_count,
        total_count=engine.total_count,
    )


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_achievements(
    body: EvaluateRequest,
    engine: Annotated[AchievementEngine, Depends(get_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> EvaluateResponse:
    """Run an evaluation pass and report the levels it unlocked."""
    tz = settings.tzinfo
    inputs = ProgressInputs(
        sessions=[session_from_dict(s, tz) for s in body.sessions],
        stats=stats_from_dict(body.stats),
        streak=body.streak,
        daily_goal=body.daily_goal,
        cycle_start=body.cycle_start,
        account_created_at=body.account_created_at,
    )
    newly_unlocked = engine.evaluate(inputs)

    unlocked: list[UnlockedLevelSchema] = []
    for achievement, level in newly_unlocked:
        record = engine.record(achievement.id, level.level)
        schema = _unlocked_schema(record) if record is not None else None
        if schema is not None:
            unlocked.append(schema)
    return EvaluateResponse(newly_unlocked=unlocked, pending_count=engine.pending_count)


@router.get("/pending", response_model=PendingRewardsResponse)
async def pending_rewards(
    engine: Annotated[AchievementEngine, Depends(get_engine)],
) -> PendingRewardsResponse:
    """Return unlocked levels whose reward has not been claimed yet."""
    pending = [s for s in (_unlocked_schema(r) for r in engine.pending()) if s is not None]
    return PendingRewardsResponse(pending=pending, count=len(pending))


@router.post("/{achievement_id}/levels/{level}/claim", response_model=ClaimResponse)
async def claim_reward(
    achievement_id: str,
    level: int,
    engine: Annotated[AchievementEngine, Depends(get_engine)],
) -> ClaimResponse:
    """Claim the XP reward of an unlocked level.

    ``claimed`` is False when the level is still locked, already claimed, or
    a claim for it is already in flight.
    """
    found = get_level(achievement_id, level)
    if found is None:
        raise HTTPException(status_code=404, detail="Achievement level not found")
    _, lvl = found
    claimed = engine.claim(achievement_id, level)
    return ClaimResponse(
        achievement_id=achievement_id,
        level=level,
        claimed=claimed,
        xp_reward=lvl.xp_reward if claimed else 0,
    )


@router.get("/notifications", response_model=NotificationsResponse)
async def drain_notifications(
    current_user: Annotated[AuthenticatedUser | None, Depends(get_current_user)],
    registry: Annotated[EngineRegistry, Depends(get_engine_registry)],
) -> NotificationsResponse:
    """Return and clear queued unlock/claim events."""
    events = registry.notifications.drain(_identity(current_user))
    return NotificationsResponse(
        notifications=[
            NotificationSchema(
                kind=e.kind.value,
                achievement_id=e.achievement_id,
                level=e.level,
                title=e.title,
                message=e.message,
                icon=e.icon,
                xp_reward=e.xp_reward,
                created_at=e.created_at,
            )
            for e in events
        ]
    )


@router.post("/xp", response_model=XPStateResponse)
async def xp_state(
    body: XPRequest,
    engine: Annotated[AchievementEngine, Depends(get_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> XPStateResponse:
    """Compute XP, rank and badges for a session list."""
    tz = settings.tzinfo
    state = engine.xp_state([session_from_dict(s, tz) for s in body.sessions], body.streak)
    return XPStateResponse(
        total_xp=state.total_xp,
        rank=_rank_schema(state.rank),
        tier=state.tier,
        display_name=state.display_name,
        progress_pct=state.progress_pct,
        xp_to_next=state.xp_to_next,
        current_rank_xp=state.current_rank_xp,
        next_rank=_rank_schema(state.next_rank) if state.next_rank else None,
        badges=[
            BadgeSchema(id=b.id, name=b.name, description=b.description, unlocked=b.unlocked)
            for b in state.badges
        ],
    )


@router.get("/xp/grants", response_model=XPGrantsResponse)
async def xp_grants(
    current_user: Annotated[AuthenticatedUser | None, Depends(get_current_user)],
    registry: Annotated[EngineRegistry, Depends(get_engine_registry)],
) -> XPGrantsResponse:
    """XP granted by reward claims and streak bonuses."""
    identity = _identity(current_user)
    if identity:
        await registry.xp_ledger.load(identity)
    grants = registry.xp_ledger.grants(identity)
    return XPGrantsResponse(
        grants=[
            XPGrantSchema(
                amount=g.amount,
                reason=g.reason,
                icon=g.icon,
                is_bonus=g.is_bonus,
                granted_at=g.granted_at,
            )
            for g in grants
        ],
        total=sum(g.amount for g in grants),
    )


@router.post("/reset", status_code=204)
async def reset_achievements(
    engine: Annotated[AchievementEngine, Depends(get_engine)],
) -> Response:
    """Delete every achievement record and streak-bonus flag for the caller."""
    await engine.reset()
    return Response(status_code=204)
