"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from crewmate.config import get_settings
from crewmate.database import close_db, create_all, init_db
from crewmate.engagement.router import router as engagement_router
from crewmate.health.router import router as health_router
from crewmate.middleware import setup_middleware
from crewmate.redis_client import close_redis, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url, settings.database_pool_size, settings.database_max_overflow)
    await init_redis(settings.redis_url)

    if settings.environment == "development":
        try:
            await create_all()
        except Exception:
            logger.warning("create_all_failed", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CrewMate Engagement API",
        description="Points, levels, badges, streaks and referral rewards for CrewMate",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(engagement_router)

    return app


app = create_app()
