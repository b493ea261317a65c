"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from leaps.analytics.router import router as analytics_router
from leaps.config import get_settings
from leaps.database import close_db, get_session, init_db_from_settings
from leaps.gamification.seed import seed_catalog
from leaps.health.router import router as health_router
from leaps.ledger.router import router as ledger_router
from leaps.middleware import setup_middleware
from leaps.redis_client import close_redis, init_redis
from leaps.submissions.router import router as submissions_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db_from_settings(settings)
    await init_redis(settings.redis_url)

    # Seed the activity and badge catalog (idempotent)
    try:
        async for db in get_session():
            await seed_catalog(db)
            break
    except Exception:
        logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LEAPS Tracker Analytics API",
        description="Analytics, leaderboard and points ledger for the MS Elevate LEAPS Tracker",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(analytics_router)
    app.include_router(submissions_router)
    app.include_router(ledger_router)

    return app


app = create_app()
