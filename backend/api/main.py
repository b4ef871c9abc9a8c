"""FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from studyflow.persistence import LocalAchievementCache

from backend.api.config import Settings
from backend.api.routers import achievements
from backend.api.services.engine_registry import EngineRegistry, init_engine_registry
from backend.api.services.notifications import NotificationQueue
from backend.api.services.xp_ledger import XPLedgerService

logger = logging.getLogger(__name__)


def build_registry(app_settings: Settings) -> EngineRegistry:
    """Wire the local cache, DB store, XP ledger and notification queue."""
    from backend.api.db.database import async_session_factory
    from backend.api.services.db_achievement_store import DbAchievementStore

    local = LocalAchievementCache(app_settings.achievements_data_dir or None)
    remote = None
    session_factory = None
    if app_settings.remote_persistence_enabled:
        session_factory = async_session_factory
        remote = DbAchievementStore(session_factory)
    else:
        logger.info("Remote achievement persistence disabled, using local cache only")

    return EngineRegistry(
        local,
        remote,
        XPLedgerService(session_factory),
        NotificationQueue(),
        streak_bonus_xp=app_settings.streak_bonus_xp,
        tz=app_settings.tzinfo,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)

    if settings.remote_persistence_enabled and settings.auto_create_schema:
        from backend.api.db.database import create_schema

        await create_schema()
        logger.info("Achievement tables created")

    registry = build_registry(settings)
    init_engine_registry(registry)
    logger.info("Achievement engine registry ready (data dir: %s)", settings.achievements_data_dir)

    yield

    # Shutdown: let in-flight remote writes settle
    await registry.flush()


load_dotenv()  # Populate os.environ from .env before reading settings
settings = Settings()

app = FastAPI(
    title="StudyFlow Achievements API",
    description="Achievements, XP and rank progression for study sessions",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)


# -- Exception handlers --------------------------------------------------------


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback and return a generic 500 without internal details."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Return 422 for ValueError (bad input data that passed validation)."""
    logger.warning("ValueError on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc)},
    )


# -- Middleware (order matters: last added = first executed) ------------------

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- Routers -----------------------------------------------------------------

app.include_router(achievements.router, prefix="/api/achievements", tags=["achievements"])


# -- Health ------------------------------------------------------------------


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Return a simple health-check response."""
    return {"status": "ok"}
