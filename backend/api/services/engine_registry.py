"""Per-identity achievement engines.

One ``AchievementEngine`` is kept per namespace (user id, or ``local`` for
anonymous clients).  Engines share the local cache, the DB store, the XP
ledger and the notification queue, but each gets its own gateway: a reset
locks that gateway for good and the engine's ``on_reset`` hook evicts it, so
the next request builds a fresh engine.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo

from studyflow.engine import AchievementEngine
from studyflow.persistence import (
    AchievementGateway,
    LocalAchievementCache,
    RemoteAchievementRepository,
    namespace_for,
)
from studyflow.streak_bonus import STREAK_BONUS_XP

from backend.api.services.notifications import NotificationQueue
from backend.api.services.xp_ledger import XPLedgerService

logger = logging.getLogger(__name__)


class EngineRegistry:
    def __init__(
        self,
        local: LocalAchievementCache,
        remote: RemoteAchievementRepository | None,
        xp_ledger: XPLedgerService,
        notifications: NotificationQueue,
        *,
        streak_bonus_xp: int = STREAK_BONUS_XP,
        tz: tzinfo | None = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.xp_ledger = xp_ledger
        self.notifications = notifications
        self._streak_bonus_xp = streak_bonus_xp
        self._tz = tz
        self._engines: dict[str, AchievementEngine] = {}
        self._gateways: dict[str, AchievementGateway] = {}
        self._load_locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, identity: str | None) -> bool:
        return namespace_for(identity) in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    async def get(self, identity: str | None) -> AchievementEngine:
        """Return the loaded engine for *identity*, building it if needed."""
        namespace = namespace_for(identity)
        lock = self._load_locks.setdefault(namespace, asyncio.Lock())
        async with lock:
            engine = self._engines.get(namespace)
            if engine is None:
                engine = self._build(identity)
                self._engines[namespace] = engine
            if not engine.loaded and not engine.locked:
                await engine.load()
                if identity:
                    await self.xp_ledger.load(identity)
        return engine

    def gateway(self, identity: str | None) -> AchievementGateway | None:
        return self._gateways.get(namespace_for(identity))

    async def flush(self) -> None:
        """Wait for pending remote writes of every live engine."""
        for gateway in list(self._gateways.values()):
            await gateway.flush()
        await self.xp_ledger.drain()

    def _build(self, identity: str | None) -> AchievementEngine:
        namespace = namespace_for(identity)
        gateway = AchievementGateway(self.local, self.remote)
        engine: AchievementEngine

        def evict() -> None:
            if self._engines.get(namespace) is engine:
                del self._engines[namespace]
                self._gateways.pop(namespace, None)
                lock = self._load_locks.get(namespace)
                if lock is not None and not lock.locked():
                    del self._load_locks[namespace]
                logger.info("Evicted achievement engine for %s after reset", namespace)

        engine = AchievementEngine(
            gateway,
            identity=identity,
            xp_ledger=self.xp_ledger.ledger_for(identity),
            notifier=self.notifications.dispatcher_for(identity),
            on_reset=evict,
            streak_bonus_xp=self._streak_bonus_xp,
            tz=self._tz,
        )
        self._gateways[namespace] = gateway
        return engine


_registry: EngineRegistry | None = None


def init_engine_registry(registry: EngineRegistry) -> None:
    global _registry
    _registry = registry


def get_engine_registry() -> EngineRegistry:
    """FastAPI dependency returning the process-wide registry."""
    if _registry is None:
        raise RuntimeError("Engine registry not initialised")
    return _registry
