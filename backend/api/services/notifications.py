"""In-memory notification queue.

Implements the engine's dispatcher protocol by queueing events per
identity; clients drain them over HTTP and present them however they like.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from studyflow.catalog import Achievement, AchievementLevel, claim_key
from studyflow.persistence import namespace_for

# Oldest events are dropped past this many per identity
MAX_QUEUED_EVENTS = 200


class NotificationKind(StrEnum):
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    REWARD_CLAIMED = "reward_claimed"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    achievement_id: str
    level: int
    title: str
    message: str
    icon: str
    xp_reward: int
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> str:
        return claim_key(self.achievement_id, self.level)


class NotificationQueue:
    def __init__(self) -> None:
        self._queues: dict[str, deque[Notification]] = {}

    def dispatcher_for(self, identity: str | None) -> UserNotificationDispatcher:
        return UserNotificationDispatcher(self, identity)

    def push(self, identity: str | None, notification: Notification) -> None:
        queue = self._queues.setdefault(namespace_for(identity), deque(maxlen=MAX_QUEUED_EVENTS))
        queue.append(notification)

    def drain(self, identity: str | None) -> list[Notification]:
        """Return and remove every queued event for *identity*, oldest first."""
        queue = self._queues.pop(namespace_for(identity), None)
        return list(queue) if queue else []

    def peek(self, identity: str | None) -> list[Notification]:
        return list(self._queues.get(namespace_for(identity), ()))


class UserNotificationDispatcher:
    """``NotificationDispatcher`` bound to one identity."""

    def __init__(self, queue: NotificationQueue, identity: str | None) -> None:
        self._queue = queue
        self._identity = identity

    def achievement_unlocked(self, achievement: Achievement, level: AchievementLevel) -> None:
        self._queue.push(
            self._identity,
            Notification(
                kind=NotificationKind.ACHIEVEMENT_UNLOCKED,
                achievement_id=achievement.id,
                level=level.level,
                title=f"{achievement.name} unlocked",
                message=level.label,
                icon=achievement.icon,
                xp_reward=level.xp_reward,
            ),
        )

    def reward_claimed(self, achievement: Achievement, level: AchievementLevel) -> None:
        self._queue.push(
            self._identity,
            Notification(
                kind=NotificationKind.REWARD_CLAIMED,
                achievement_id=achievement.id,
                level=level.level,
                title=f"+{level.xp_reward} XP",
                message=f"{achievement.name} - {level.label}",
                icon=achievement.icon,
                xp_reward=level.xp_reward,
            ),
        )
