"""XP ledger: in-memory grant history with async PostgreSQL persistence.

Grants are recorded in memory synchronously (the engine calls ``grant``
from inside a claim) and written to the ``xp_grants`` table by a tracked
background task.  DB failures are logged; the in-memory entry stays.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyflow.persistence import namespace_for

from backend.api.db.models import XPGrant as XPGrantModel

logger = logging.getLogger(__name__)

# Grant entries kept per identity; the running total covers every grant
MAX_XP_HISTORY = 50


@dataclass(frozen=True)
class XPGrantEntry:
    amount: int
    reason: str
    icon: str
    is_bonus: bool
    granted_at: datetime


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo even on timezone-aware columns
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def _entry_key(entry: XPGrantEntry) -> tuple[int, str, bool, datetime]:
    return (entry.amount, entry.reason, entry.is_bonus, _aware(entry.granted_at))


class XPLedgerService:
    """Grant history for every identity served by this process."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory
        self._grants: dict[str, list[XPGrantEntry]] = {}
        self._totals: dict[str, int] = {}
        self._loaded: set[str] = set()
        self._pending: set[asyncio.Task[None]] = set()

    def ledger_for(self, identity: str | None) -> UserXPLedger:
        return UserXPLedger(self, identity)

    def record(self, identity: str | None, entry: XPGrantEntry) -> None:
        namespace = namespace_for(identity)
        history = self._grants.setdefault(namespace, [])
        history.append(entry)
        del history[:-MAX_XP_HISTORY]
        self._totals[namespace] = self._totals.get(namespace, 0) + entry.amount
        logger.info(
            "XP granted to %s: +%d (%s)", identity or "anonymous user", entry.amount, entry.reason
        )
        if identity and self._session_factory is not None:
            self._schedule(self._persist(identity, entry))

    def grants(self, identity: str | None) -> list[XPGrantEntry]:
        """Most recent grants for *identity*, oldest first."""
        return list(self._grants.get(namespace_for(identity), []))

    def total(self, identity: str | None) -> int:
        return self._totals.get(namespace_for(identity), 0)

    async def load(self, identity: str) -> int:
        """Merge the DB history for *identity* into memory; returns rows read.

        Runs once per identity.  A failed load is retried on the next call,
        and grants recorded in the meantime are kept.
        """
        namespace = namespace_for(identity)
        if self._session_factory is None or namespace in self._loaded:
            return 0
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(XPGrantModel)
                    .where(XPGrantModel.user_id == identity)
                    .order_by(XPGrantModel.created_at.desc(), XPGrantModel.id.desc())
                    .limit(MAX_XP_HISTORY)
                )
                rows = list(reversed(result.scalars().all()))
                stored_total = await db.scalar(
                    select(func.coalesce(func.sum(XPGrantModel.amount), 0)).where(
                        XPGrantModel.user_id == identity
                    )
                )
        except Exception:
            logger.warning("Failed to load XP grants from DB for %s", identity, exc_info=True)
            return 0

        stored = [
            XPGrantEntry(
                amount=row.amount,
                reason=row.reason,
                icon=row.icon,
                is_bonus=row.is_bonus,
                granted_at=_aware(row.created_at),
            )
            for row in rows
        ]
        # Grants recorded before the load may already be in the DB
        seen = {_entry_key(e) for e in stored}
        unsaved = [e for e in self._grants.get(namespace, []) if _entry_key(e) not in seen]
        merged = sorted(stored + unsaved, key=lambda e: e.granted_at)
        self._grants[namespace] = merged[-MAX_XP_HISTORY:]
        self._totals[namespace] = int(stored_total or 0) + sum(e.amount for e in unsaved)
        self._loaded.add(namespace)
        return len(rows)

    async def drain(self) -> None:
        """Wait for every scheduled DB write to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; XP grant not persisted")
            coro.close()
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, identity: str, entry: XPGrantEntry) -> None:
        assert self._session_factory is not None
        try:
            async with self._session_factory() as db:
                db.add(
                    XPGrantModel(
                        user_id=identity,
                        amount=entry.amount,
                        reason=entry.reason,
                        icon=entry.icon,
                        is_bonus=entry.is_bonus,
                        created_at=entry.granted_at,
                    )
                )
                await db.commit()
        except Exception:
            logger.warning("Failed to persist XP grant to DB for %s", identity, exc_info=True)


class UserXPLedger:
    """``XPLedger`` bound to one identity."""

    def __init__(self, service: XPLedgerService, identity: str | None) -> None:
        self._service = service
        self._identity = identity

    def grant(self, amount: int, reason: str, icon: str, is_bonus: bool) -> None:
        self._service.record(
            self._identity,
            XPGrantEntry(
                amount=amount,
                reason=reason,
                icon=icon,
                is_bonus=is_bonus,
                granted_at=datetime.now(UTC),
            ),
        )
