"""Materialized view refresh.

Only names in MATERIALIZED_VIEWS are ever refreshed; the SQL for each is
built once from that constant list, so no caller-supplied text reaches the
database.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leaps.db.models import MATERIALIZED_VIEWS
from leaps.errors import InvalidQueryError

logger = structlog.get_logger()

_REFRESH_SQL = {name: text(f"REFRESH MATERIALIZED VIEW CONCURRENTLY {name}") for name in MATERIALIZED_VIEWS}
_COUNT_SQL = {name: text(f"SELECT COUNT(*) FROM {name}") for name in MATERIALIZED_VIEWS}
_ANALYZE_SQL = text(f"ANALYZE {', '.join(MATERIALIZED_VIEWS)}")


async def refresh_view(
    session_factory: async_sessionmaker[AsyncSession],
    view_name: str,
    log: Any = None,  # noqa: ANN401
) -> dict[str, Any]:
    """Refresh one view and count its rows. Failures are reported, not raised."""
    if view_name not in _REFRESH_SQL:
        msg = f"Unknown materialized view '{view_name}'"
        raise InvalidQueryError(msg, details={"allowed": list(MATERIALIZED_VIEWS)})
    log = log or logger

    started = time.perf_counter()
    try:
        async with session_factory() as session:
            await session.execute(_REFRESH_SQL[view_name])
            row_count = (await session.execute(_COUNT_SQL[view_name])).scalar_one()
            await session.commit()
    except SQLAlchemyError as exc:
        duration = int((time.perf_counter() - started) * 1000)
        log.error("materialized_view_refresh_failed", view_name=view_name, duration_ms=duration, error=str(exc))
        return {
            "view_name": view_name,
            "refresh_duration_ms": duration,
            "row_count": 0,
            "success": False,
            "error": str(exc),
        }

    duration = int((time.perf_counter() - started) * 1000)
    log.info("materialized_view_refreshed", view_name=view_name, duration_ms=duration, row_count=row_count)
    return {
        "view_name": view_name,
        "refresh_duration_ms": duration,
        "row_count": int(row_count),
        "success": True,
        "error": None,
    }


def summarize(results: list[dict[str, Any]], total_duration_ms: int, statistics_updated: bool) -> dict[str, Any]:
    """Roll per-view results up into the refresh report."""
    ok = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    return {
        "success": not failed,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_duration_ms": total_duration_ms,
        "materialized_views": {
            "total_count": len(results),
            "successful_count": len(ok),
            "failed_count": len(failed),
            "details": results,
        },
        "maintenance": {"statistics_updated": statistics_updated},
        "performance": {
            "total_rows_refreshed": sum(r["row_count"] for r in ok),
            "average_refresh_time_ms": round(sum(r["refresh_duration_ms"] for r in ok) / len(ok)) if ok else 0,
        },
    }


def refresh_status_code(summary: dict[str, Any]) -> int:
    """200 when every view refreshed, 207 (multi-status) when some failed."""
    return 200 if summary["success"] else 207


async def refresh_all(
    session_factory: async_sessionmaker[AsyncSession],
    views: tuple[str, ...] = MATERIALIZED_VIEWS,
    log: Any = None,  # noqa: ANN401
) -> dict[str, Any]:
    """Refresh every curated view in parallel, then ANALYZE them when all succeeded."""
    log = log or logger
    started = time.perf_counter()
    results = list(await asyncio.gather(*(refresh_view(session_factory, v, log) for v in views)))

    statistics_updated = False
    if all(r["success"] for r in results):
        try:
            async with session_factory() as session:
                await session.execute(_ANALYZE_SQL)
                await session.commit()
            statistics_updated = True
        except SQLAlchemyError:
            log.warning("materialized_view_analyze_failed", exc_info=True)

    summary = summarize(results, int((time.perf_counter() - started) * 1000), statistics_updated)
    log.info(
        "materialized_views_refresh_completed",
        successful=summary["materialized_views"]["successful_count"],
        failed=summary["materialized_views"]["failed_count"],
        total_duration_ms=summary["total_duration_ms"],
    )
    return summary
