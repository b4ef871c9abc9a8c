"""FastAPI dependency injection functions."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException

from studyflow.engine import AchievementEngine

from backend.api.config import Settings
from backend.api.services.engine_registry import EngineRegistry, get_engine_registry

# Identity is resolved upstream (gateway/proxy); the id arrives as a header
USER_ID_HEADER = "X-User-Id"
_MAX_USER_ID_LENGTH = 128


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton application settings."""
    return Settings()


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    user_id: str


def get_current_user(
    x_user_id: Annotated[str | None, Header(alias=USER_ID_HEADER)] = None,
) -> AuthenticatedUser | None:
    """Return the caller's identity, or None for anonymous (local-only) use."""
    if x_user_id is None:
        return None
    user_id = x_user_id.strip()
    if not user_id:
        return None
    if len(user_id) > _MAX_USER_ID_LENGTH or "/" in user_id or "\\" in user_id or ".." in user_id:
        raise HTTPException(status_code=400, detail="Invalid user id")
    return AuthenticatedUser(user_id=user_id)


async def get_engine(
    current_user: Annotated[AuthenticatedUser | None, Depends(get_current_user)],
    registry: Annotated[EngineRegistry, Depends(get_engine_registry)],
) -> AchievementEngine:
    """Loaded achievement engine for the caller."""
    return await registry.get(current_user.user_id if current_user else None)
