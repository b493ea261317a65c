"""Analytics API endpoints: admin report, stage metrics, leaderboard, platform stats, view refresh."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leaps.analytics.filters import AnalyticsFilters
from leaps.analytics.leaderboard import get_leaderboard, invalidate_leaderboard_cache, validate_page
from leaps.analytics.platform import get_platform_stats
from leaps.analytics.report import ReportOptions, build_report
from leaps.analytics.schemas import LeaderboardPage, RefreshSummary, StageMetrics
from leaps.analytics.sources import resolve_source
from leaps.analytics.stage_metrics import get_stage_metrics
from leaps.analytics.views import refresh_all, refresh_status_code
from leaps.auth.dependencies import Caller, require_role, verify_cron_secret
from leaps.config import get_settings
from leaps.database import get_session, get_session_factory
from leaps.redis_client import get_redis_or_none
from leaps.schemas import DataResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Analytics"])


# ── Admin ──


@router.get("/admin/analytics", response_model=DataResponse[dict])
async def admin_analytics(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    cohort: str | None = Query(None),
    source: str | None = Query(None),
    caller: Caller = Depends(require_role("REVIEWER")),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict:
    """Composite analytics report for the admin dashboard."""
    settings = get_settings()
    filters = AnalyticsFilters.parse(startDate=start_date, endDate=end_date, cohort=cohort)
    options = ReportOptions.from_settings(settings, resolve_source(source, settings.analytics_default_source))
    report = await build_report(session_factory, filters, options, log=logger.bind(caller_id=caller.user_id))
    return {"data": report}


async def _refresh_and_respond(session_factory: async_sessionmaker[AsyncSession], trigger: str) -> JSONResponse:
    log = logger.bind(trigger=trigger)
    summary = await refresh_all(session_factory, log=log)
    if summary["materialized_views"]["successful_count"]:
        await invalidate_leaderboard_cache(get_redis_or_none())
    return JSONResponse(status_code=refresh_status_code(summary), content={"data": summary})


@router.post(
    "/admin/materialized-views/refresh",
    response_model=DataResponse[RefreshSummary],
    responses={207: {"description": "Some views failed to refresh"}},
)
async def refresh_materialized_views(
    caller: Caller = Depends(require_role("ADMIN")),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> JSONResponse:
    """Refresh every curated materialized view. 207 when any view failed."""
    return await _refresh_and_respond(session_factory, f"admin:{caller.user_id}")


@router.get(
    "/cron/refresh-leaderboards",
    response_model=DataResponse[RefreshSummary],
    dependencies=[Depends(verify_cron_secret)],
)
async def cron_refresh(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> JSONResponse:
    """Scheduled refresh, authenticated with the cron secret."""
    return await _refresh_and_respond(session_factory, "cron")


# ── Public ──


@router.get("/metrics/{stage}", response_model=DataResponse[StageMetrics])
async def stage_metrics(stage: str, db: AsyncSession = Depends(get_session)) -> dict:
    """Submission metrics for one LEAPS stage (case-insensitive)."""
    return {"data": await get_stage_metrics(db, stage)}


@router.get("/leaderboard", response_model=DataResponse[LeaderboardPage])
async def leaderboard(
    period: str = Query("all"),
    cohort: str | None = Query(None, max_length=200),
    search: str | None = Query(None),
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    source: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Ranked educators by total points."""
    settings = get_settings()
    limit, offset = validate_page(limit, offset, settings.leaderboard_default_limit, settings.leaderboard_max_limit)
    page = await get_leaderboard(
        db,
        get_redis_or_none(),
        period=period,
        cohort=cohort,
        search=search,
        limit=limit,
        offset=offset,
        source=resolve_source(source, settings.analytics_default_source),
        cache_ttl=settings.leaderboard_cache_ttl_seconds,
    )
    return {"data": page}


@router.get("/stats", response_model=DataResponse[dict])
async def platform_stats(
    source: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Public platform-wide summary."""
    settings = get_settings()
    return {"data": await get_platform_stats(db, resolve_source(source, settings.analytics_default_source))}
