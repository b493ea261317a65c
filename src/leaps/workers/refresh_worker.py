"""Materialized view refresh arq worker.

Refreshes every curated view on a fixed schedule, then drops the cached
leaderboard pages so readers see the new totals.

Import path for arq CLI: arq leaps.workers.refresh_worker.WorkerSettings
"""

from __future__ import annotations

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from leaps.analytics.leaderboard import invalidate_leaderboard_cache
from leaps.analytics.views import refresh_all
from leaps.config import get_settings
from leaps.database import close_db, get_session_factory, init_db_from_settings
from leaps.middleware.logging import setup_logging
from leaps.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)

# Every 15 minutes
REFRESH_MINUTES = {0, 15, 30, 45}


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the database engine and the cache pool for the worker process."""
    settings = get_settings()
    setup_logging(settings)
    await init_db_from_settings(settings)
    await init_redis(settings.redis_url)
    logger.info("Refresh worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    await close_redis()
    logger.info("Refresh worker shut down")


async def refresh_materialized_views(ctx: dict) -> dict[str, Any]:  # type: ignore[type-arg]
    """Refresh all views. Partial failures are reported in the summary, not raised."""
    summary = await refresh_all(get_session_factory())
    views = summary["materialized_views"]
    if views["successful_count"]:
        await invalidate_leaderboard_cache(get_redis())
    if views["failed_count"]:
        logger.warning(
            "Scheduled refresh finished with %d of %d views failed",
            views["failed_count"],
            views["total_count"],
        )
    return summary


class WorkerSettings:
    """arq worker settings for the scheduled view refresh."""

    functions = [refresh_materialized_views]
    cron_jobs = [
        cron(refresh_materialized_views, minute=REFRESH_MINUTES, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
    job_timeout = 300
