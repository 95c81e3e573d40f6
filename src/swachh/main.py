"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from swachh.analytics.router import router as analytics_router
from swachh.config import get_settings
from swachh.counters import close_redis, init_redis
from swachh.database import close_db, init_db
from swachh.gamification.router import router as gamification_router
from swachh.health.router import router as health_router
from swachh.issues.router import router as issues_router
from swachh.middleware import setup_middleware
from swachh.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("startup", environment=settings.environment, version=settings.app_version)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Swachh API",
        description="Civic issue reporting, voting and community leaderboard",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(issues_router)
    app.include_router(users_router)
    app.include_router(gamification_router)
    app.include_router(analytics_router)

    return app


app = create_app()
