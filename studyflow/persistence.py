"""Persistence gateway for achievement records and the streak-bonus ledger.

Two backends are composed here:

- a local cache (JSON files plus an in-memory mirror) written synchronously
  on every save and used as the offline fallback, and
- an optional remote repository with idempotent upsert, written
  asynchronously and best-effort.

A reset moves the gateway through ``ACTIVE -> RESETTING -> RESET``.  There
is no way back to ``ACTIVE``; once the state has left it, loads and saves
are no-ops, so remote writes scheduled before the reset cannot bring
records back after the stores were cleared.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from studyflow.reconcile import UserAchievementRecord
from studyflow.sessions import coerce_int, coerce_number, parse_timestamp

logger = logging.getLogger(__name__)

ANONYMOUS_NAMESPACE = "local"
USER_NAMESPACE_PREFIX = "user-"


class GatewayState(StrEnum):
    ACTIVE = "active"
    RESETTING = "resetting"
    RESET = "reset"


_TRANSITIONS: dict[GatewayState, frozenset[GatewayState]] = {
    GatewayState.ACTIVE: frozenset({GatewayState.RESETTING}),
    GatewayState.RESETTING: frozenset({GatewayState.RESET}),
    GatewayState.RESET: frozenset(),
}


class RemoteAchievementRepository(Protocol):
    """Remote store keyed by (user, achievement_id, level)."""

    async def fetch(self, user_id: str) -> list[UserAchievementRecord]: ...

    async def upsert(
        self,
        user_id: str,
        records: Sequence[UserAchievementRecord],
        is_current: Callable[[], bool] | None = None,
    ) -> None: ...

    async def delete_all(self, user_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def record_to_dict(record: UserAchievementRecord) -> dict[str, object]:
    """Plain-dict form of a record (timestamps as ISO-8601 strings)."""
    return {
        "achievement_id": record.achievement_id,
        "level": record.level,
        "unlocked_at": _iso(record.unlocked_at),
        "claimed_at": _iso(record.claimed_at),
        "progress": record.progress,
    }


def record_from_dict(d: dict[str, object]) -> UserAchievementRecord:
    """Rebuild a record, restoring ``claimed_at => unlocked_at`` if violated."""
    unlocked_at = parse_timestamp(d.get("unlocked_at"))
    claimed_at = parse_timestamp(d.get("claimed_at"))
    if claimed_at is not None and unlocked_at is None:
        unlocked_at = claimed_at
    return UserAchievementRecord(
        achievement_id=str(d["achievement_id"]),
        level=coerce_int(d["level"]),
        unlocked_at=unlocked_at,
        claimed_at=claimed_at,
        progress=coerce_number(d.get("progress")),
    )


def namespace_for(identity: str | None) -> str:
    """Cache key for *identity*; no user id can collide with the anonymous one."""
    if not identity:
        return ANONYMOUS_NAMESPACE
    return f"{USER_NAMESPACE_PREFIX}{identity}"


# ---------------------------------------------------------------------------
# Local cache
# ---------------------------------------------------------------------------


class LocalAchievementCache:
    """In-memory mirror with optional JSON persistence under *data_dir*.

    Files live at ``records/<namespace>.json`` and
    ``streak_bonus/<namespace>.json``.  Without a directory the cache is
    memory-only.
    """

    def __init__(self, data_dir: str | Path | None = None) -> None:
        self._dir = Path(data_dir) if data_dir is not None else None
        self._records: dict[str, list[UserAchievementRecord]] = {}
        self._flags: dict[str, dict[int, datetime]] = {}
        if self._dir is not None:
            (self._dir / "records").mkdir(parents=True, exist_ok=True)
            (self._dir / "streak_bonus").mkdir(parents=True, exist_ok=True)

    def _path(self, kind: str, namespace: str) -> Path | None:
        if self._dir is None:
            return None
        return self._dir / kind / f"{namespace}.json"

    def _read_json(self, kind: str, namespace: str) -> object | None:
        path = self._path(kind, namespace)
        if path is None or not path.is_file():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Failed to read local %s cache for %s", kind, namespace, exc_info=True)
            return None

    def _write_json(self, kind: str, namespace: str, payload: object) -> None:
        path = self._path(kind, namespace)
        if path is None:
            return
        try:
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            logger.warning("Failed to persist local %s cache for %s", kind, namespace, exc_info=True)

    def _unlink(self, kind: str, namespace: str) -> None:
        path = self._path(kind, namespace)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to delete local %s cache for %s", kind, namespace, exc_info=True)

    # -- records --------------------------------------------------------------

    def read_records(self, namespace: str) -> list[UserAchievementRecord]:
        cached = self._records.get(namespace)
        if cached is not None:
            return list(cached)
        raw = self._read_json("records", namespace)
        if not isinstance(raw, list):
            return []
        records: list[UserAchievementRecord] = []
        for item in raw:
            try:
                records.append(record_from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed cached record for %s: %r", namespace, item)
        self._records[namespace] = records
        return list(records)

    def write_records(self, namespace: str, records: Sequence[UserAchievementRecord]) -> None:
        self._records[namespace] = list(records)
        self._write_json("records", namespace, [record_to_dict(r) for r in records])

    def clear_records(self, namespace: str) -> None:
        self._records.pop(namespace, None)
        self._unlink("records", namespace)

    # -- streak bonus flags -----------------------------------------------------

    def read_bonus_flags(self, namespace: str) -> dict[int, datetime]:
        cached = self._flags.get(namespace)
        if cached is not None:
            return dict(cached)
        raw = self._read_json("streak_bonus", namespace)
        flags: dict[int, datetime] = {}
        if isinstance(raw, dict):
            for multiple, awarded in raw.items():
                when = parse_timestamp(awarded)
                if when is not None:
                    flags[coerce_int(multiple)] = when
        self._flags[namespace] = flags
        return dict(flags)

    def write_bonus_flags(self, namespace: str, flags: dict[int, datetime]) -> None:
        self._flags[namespace] = dict(flags)
        self._write_json(
            "streak_bonus", namespace, {str(m): when.isoformat() for m, when in flags.items()}
        )

    def clear_bonus_flags(self, namespace: str) -> None:
        self._flags.pop(namespace, None)
        self._unlink("streak_bonus", namespace)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class AchievementGateway:
    """Try-remote-else-local store with a one-way reset lock."""

    def __init__(
        self,
        local: LocalAchievementCache,
        remote: RemoteAchievementRepository | None = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self._state = GatewayState.ACTIVE
        self._pending: set[asyncio.Task[None]] = set()
        self._last_write: asyncio.Task[None] | None = None

    @property
    def state(self) -> GatewayState:
        return self._state

    @property
    def locked(self) -> bool:
        """True once a reset has started; never goes back to False."""
        return self._state is not GatewayState.ACTIVE

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def _transition(self, target: GatewayState) -> None:
        if target not in _TRANSITIONS[self._state]:
            return
        logger.info("Achievement gateway %s -> %s", self._state, target)
        self._state = target

    async def load(self, identity: str | None) -> list[UserAchievementRecord]:
        """Load records, preferring the remote store when an identity is known."""
        if self.locked:
            return []
        if identity and self.remote is not None:
            try:
                records = await self.remote.fetch(identity)
            except Exception:
                logger.warning(
                    "Failed to load achievements remotely for %s, using local cache",
                    identity,
                    exc_info=True,
                )
            else:
                if not self.locked:
                    return records
                return []
        return self.local.read_records(namespace_for(identity))

    def save(
        self,
        identity: str | None,
        records: Sequence[UserAchievementRecord],
    ) -> asyncio.Task[None] | None:
        """Write the local cache now and schedule the remote upsert.

        Returns the scheduled remote task (for callers that want to observe
        it), or None when nothing was scheduled.
        """
        if self.locked:
            logger.debug("Dropping achievement save during reset")
            return None

        snapshot = list(records)
        self.local.write_records(namespace_for(identity), snapshot)

        if not identity or self.remote is None or not snapshot:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; skipping remote achievement save")
            return None

        task = loop.create_task(self._push_remote(identity, snapshot, self._last_write))
        self._last_write = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _push_remote(
        self,
        identity: str,
        records: list[UserAchievementRecord],
        previous: asyncio.Task[None] | None,
    ) -> None:
        # Writes land in the order they were scheduled
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        if self.locked:
            logger.debug("Dropping queued remote achievement save for %s after reset", identity)
            return
        assert self.remote is not None
        try:
            await self.remote.upsert(identity, records, is_current=lambda: not self.locked)
        except Exception:
            logger.warning("Failed to save achievements remotely for %s", identity, exc_info=True)

    async def flush(self) -> None:
        """Wait for every scheduled remote write to settle."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def load_bonus_flags(self, identity: str | None) -> dict[int, datetime]:
        if self.locked:
            return {}
        return self.local.read_bonus_flags(namespace_for(identity))

    def save_bonus_flags(self, identity: str | None, flags: dict[int, datetime]) -> None:
        if self.locked:
            return
        self.local.write_bonus_flags(namespace_for(identity), flags)

    async def reset(self, identity: str | None) -> None:
        """Clear every store for *identity* and leave the gateway locked.

        The lock is raised before anything else and does not depend on the
        remote delete succeeding.  Safe to call more than once.
        """
        self._transition(GatewayState.RESETTING)

        namespace = namespace_for(identity)
        self.local.clear_records(namespace)
        self.local.clear_bonus_flags(namespace)

        if identity and self.remote is not None:
            try:
                await self.remote.delete_all(identity)
            except Exception:
                logger.warning(
                    "Failed to delete remote achievements for %s", identity, exc_info=True
                )

        self._transition(GatewayState.RESET)
