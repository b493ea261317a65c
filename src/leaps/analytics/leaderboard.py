"""Leaderboard reads over the per-user point totals.

Rows come from `leaderboard_totals` / `leaderboard_30d` or the equivalent
live aggregation (see leaps.analytics.sources). Pages are cached in Redis
keyed by the full query; a cache miss or a missing Redis falls through to
PostgreSQL.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import ColumnElement, and_, desc, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.analytics.sources import ROLLING_WINDOW_DAYS, leaderboard_relation, resolve_period
from leaps.db.models import Badge, EarnedBadge, PointsLedger
from leaps.domain import ACTIVITY_CODES, ALL_COHORTS
from leaps.errors import InvalidQueryError

logger = logging.getLogger(__name__)

LEADERBOARD_CACHE_PREFIX = "leaderboard:page:"
MAX_SEARCH_LENGTH = 100


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so a search term only ever matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def normalize_cohort(cohort: str | None) -> str | None:
    """The cohort to filter on, or None for every spelling of "no filter" (None, "", "ALL", "all")."""
    if cohort is None:
        return None
    cohort = cohort.strip()
    if not cohort or cohort.upper() == ALL_COHORTS:
        return None
    return cohort


def validate_page(limit: int | None, offset: int | None, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Clamp-free validation: out-of-range values are client errors."""
    limit = default_limit if limit is None else limit
    offset = 0 if offset is None else offset
    if not 1 <= limit <= max_limit:
        msg = f"limit must be between 1 and {max_limit}"
        raise InvalidQueryError(msg)
    if offset < 0:
        msg = "offset must be >= 0"
        raise InvalidQueryError(msg)
    return limit, offset


def build_cache_key(
    *, period: str, cohort: str | None, search: str | None, limit: int, offset: int, source: str
) -> str:
    """Stable cache key for one leaderboard page."""
    raw = json.dumps(
        {
            "period": period,
            "cohort": normalize_cohort(cohort) or ALL_COHORTS,
            "search": (search or "").lower(),
            "limit": limit,
            "offset": offset,
            "source": source,
        },
        sort_keys=True,
    )
    return LEADERBOARD_CACHE_PREFIX + hashlib.sha256(raw.encode()).hexdigest()[:32]


def rank_entries(rows: Sequence[Mapping[str, Any]], offset: int) -> list[dict[str, Any]]:
    """Attach 1-based ranks to an already-sorted page: rank = offset + index + 1."""
    ranked = []
    for i, row in enumerate(rows):
        entry = dict(row)
        entry["rank"] = offset + i + 1
        ranked.append(entry)
    return ranked


def _filters(rel: Any, cohort: str | None, search: str | None) -> ColumnElement[bool]:  # noqa: ANN401
    conditions: list[ColumnElement[bool]] = []
    cohort = normalize_cohort(cohort)
    if cohort is not None:
        conditions.append(rel.c.cohort == cohort)
    if search:
        pattern = f"%{escape_like(search)}%"
        conditions.append(
            or_(
                rel.c.name.ilike(pattern, escape="\\"),
                rel.c.handle.ilike(pattern, escape="\\"),
                rel.c.school.ilike(pattern, escape="\\"),
            )
        )
    return and_(true(), *conditions)


async def _stage_breakdown(
    session: AsyncSession, user_ids: list[str], since: datetime | None
) -> dict[str, dict[str, int]]:
    """Per-user points per stage for the users on the page."""
    columns = [
        func.coalesce(func.sum(PointsLedger.delta_points).filter(PointsLedger.activity_code == code), 0).label(code)
        for code in ACTIVITY_CODES
    ]
    query = select(PointsLedger.user_id, *columns).where(PointsLedger.user_id.in_(user_ids))
    if since is not None:
        query = query.where(PointsLedger.created_at >= since)
    result = await session.execute(query.group_by(PointsLedger.user_id))
    return {
        row.user_id: {code.lower(): int(row._mapping[code]) for code in ACTIVITY_CODES}
        for row in result
    }


async def _badges(session: AsyncSession, user_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
    result = await session.execute(
        select(EarnedBadge.user_id, Badge.code, Badge.name, Badge.icon_url)
        .join(Badge, Badge.code == EarnedBadge.badge_code)
        .where(EarnedBadge.user_id.in_(user_ids))
        .order_by(EarnedBadge.earned_at)
    )
    badges: dict[str, list[dict[str, Any]]] = {}
    for row in result:
        badges.setdefault(row.user_id, []).append(
            {"code": row.code, "name": row.name, "icon_url": row.icon_url}
        )
    return badges


def _entry(row: Mapping[str, Any], stages: dict[str, int], badges: list[dict[str, Any]]) -> dict[str, Any]:
    last = row["last_activity_at"]
    return {
        "user_id": row["user_id"],
        "handle": row["handle"],
        "name": row["name"],
        "avatar_url": row["avatar_url"],
        "school": row["school"],
        "cohort": row["cohort"],
        "total_points": int(row["total_points"] or 0),
        "public_submissions": int(row["public_submissions"] or 0),
        "last_activity_at": last.isoformat() if isinstance(last, datetime) else last,
        "stage_points": stages or {code.lower(): 0 for code in ACTIVITY_CODES},
        "badges": badges,
    }


async def query_leaderboard(
    session: AsyncSession,
    *,
    period: str = "all",
    cohort: str | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
    source: str = "live",
    now: datetime | None = None,
) -> dict[str, Any]:
    """One page of the leaderboard straight from the database."""
    period = resolve_period(period)
    rel = leaderboard_relation(source, period, now)
    where = _filters(rel, cohort, search)

    total = (await session.execute(select(func.count()).select_from(rel).where(where))).scalar_one()
    rows = (
        await session.execute(
            select(rel)
            .where(where)
            .order_by(desc(rel.c.total_points), rel.c.last_activity_at.desc().nulls_last(), rel.c.user_id)
            .limit(limit)
            .offset(offset)
        )
    ).mappings().all()

    user_ids = [r["user_id"] for r in rows]
    since = None
    if period == "30d":
        since = (now or datetime.now(timezone.utc)) - timedelta(days=ROLLING_WINDOW_DAYS)
    stages = await _stage_breakdown(session, user_ids, since) if user_ids else {}
    badges = await _badges(session, user_ids) if user_ids else {}

    entries = rank_entries(
        [_entry(r, stages.get(r["user_id"], {}), badges.get(r["user_id"], [])) for r in rows],
        offset,
    )
    return {
        "period": period,
        "entries": entries,
        "total": int(total),
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(entries) < total,
    }


async def get_leaderboard(
    session: AsyncSession,
    redis: Redis | None,
    *,
    period: str = "all",
    cohort: str | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
    source: str = "live",
    cache_ttl: int = 300,
) -> dict[str, Any]:
    """Cached leaderboard page."""
    period = resolve_period(period)
    if search is not None:
        search = search.strip() or None
    cohort = normalize_cohort(cohort)
    if search and len(search) > MAX_SEARCH_LENGTH:
        msg = f"search must be at most {MAX_SEARCH_LENGTH} characters"
        raise InvalidQueryError(msg)

    cache_key = build_cache_key(
        period=period, cohort=cohort, search=search, limit=limit, offset=offset, source=source
    )
    if redis is not None and cache_ttl > 0:
        try:
            cached = await redis.get(cache_key)
            if cached:
                return json.loads(cached)
        except RedisError:
            logger.warning("Leaderboard cache read failed for %s", cache_key, exc_info=True)

    page = await query_leaderboard(
        session, period=period, cohort=cohort, search=search, limit=limit, offset=offset, source=source
    )

    if redis is not None and cache_ttl > 0:
        try:
            await redis.setex(cache_key, cache_ttl, json.dumps(page))
        except RedisError:
            logger.warning("Leaderboard cache write failed for %s", cache_key, exc_info=True)
    return page


async def invalidate_leaderboard_cache(redis: Redis | None) -> int:
    """Drop every cached page (called after a view refresh). Returns keys deleted."""
    if redis is None:
        return 0
    deleted = 0
    try:
        async for key in redis.scan_iter(match=LEADERBOARD_CACHE_PREFIX + "*", count=500):
            deleted += await redis.delete(key)
    except RedisError:
        logger.warning("Leaderboard cache invalidation failed", exc_info=True)
    return deleted
