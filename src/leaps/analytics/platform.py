"""Public platform statistics shown on the landing page."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import Float, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.analytics.distributions import top_badges
from leaps.analytics.sources import activity_metrics_relation, month_label
from leaps.analytics.stats import round2
from leaps.db.models import Badge, EarnedBadge, PointsLedger, Submission, User
from leaps.domain import ACTIVITY_CODES

logger = structlog.get_logger()

GROWTH_MONTHS = 6
TOP_COHORTS_LIMIT = 10
POPULAR_BADGES_LIMIT = 3


def empty_stage() -> dict[str, int]:
    return {"total": 0, "approved": 0, "pending": 0, "rejected": 0}


def stage_breakdown(rows: Iterable[Mapping[str, Any]]) -> dict[str, dict[str, int]]:
    """Counts keyed by lower-case stage, zero-filled for stages without rows."""
    by_stage = {code.lower(): empty_stage() for code in ACTIVITY_CODES}
    for row in rows:
        key = str(row["code"]).lower()
        if key not in by_stage:
            continue
        by_stage[key] = {
            "total": int(row["total_submissions"] or 0),
            "approved": int(row["approved_submissions"] or 0),
            "pending": int(row["pending_submissions"] or 0),
            "rejected": int(row["rejected_submissions"] or 0),
        }
    return by_stage


def last_months(now: datetime, count: int = GROWTH_MONTHS) -> list[str]:
    """The `count` most recent YYYY-MM labels, oldest first, ending with now's month."""
    year, month = now.year, now.month
    labels = []
    for _ in range(count):
        labels.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return labels[::-1]


def monthly_growth(
    months: list[str],
    educators: Mapping[str, int],
    submissions: Mapping[str, int],
) -> list[dict[str, Any]]:
    return [
        {
            "month": m,
            "new_educators": int(educators.get(m, 0)),
            "new_submissions": int(submissions.get(m, 0)),
        }
        for m in months
    ]


async def _students_impacted(session: AsyncSession) -> int:
    trained = Submission.payload["studentsTrained"]
    value = case(
        (func.json_typeof(trained) == "number", trained.as_float()),
        else_=0,
    )
    total = (
        await session.execute(
            select(func.coalesce(func.sum(value), 0)).where(
                Submission.activity_code == "AMPLIFY", Submission.status == "APPROVED"
            )
        )
    ).scalar_one()
    return int(total or 0)


async def _top_cohorts(session: AsyncSession) -> list[dict[str, Any]]:
    totals = (
        select(PointsLedger.user_id, func.sum(PointsLedger.delta_points).label("points"))
        .group_by(PointsLedger.user_id)
        .subquery("user_points")
    )
    avg_points = func.avg(func.coalesce(totals.c.points, 0).cast(Float))
    rows = (
        await session.execute(
            select(User.cohort, func.count(User.id).label("count"), avg_points.label("avg_points"))
            .outerjoin(totals, totals.c.user_id == User.id)
            .where(User.role == "PARTICIPANT", User.cohort.is_not(None))
            .group_by(User.cohort)
            .order_by(avg_points.desc(), func.count(User.id).desc())
            .limit(TOP_COHORTS_LIMIT)
        )
    ).all()
    return [
        {"name": r.cohort, "count": int(r.count), "avgPoints": round2(float(r.avg_points or 0))} for r in rows
    ]


async def _growth(session: AsyncSession, now: datetime) -> list[dict[str, Any]]:
    months = last_months(now)
    start = datetime.strptime(months[0] + "-01", "%Y-%m-%d").replace(tzinfo=timezone.utc)

    user_month = month_label(User.created_at)
    educators = (
        await session.execute(
            select(user_month, func.count(User.id))
            .where(User.created_at >= start, User.user_type == "EDUCATOR")
            .group_by(user_month)
        )
    ).all()
    sub_month = month_label(Submission.created_at)
    submissions = (
        await session.execute(
            select(sub_month, func.count(Submission.id)).where(Submission.created_at >= start).group_by(sub_month)
        )
    ).all()
    return monthly_growth(months, dict(educators), dict(submissions))


async def get_platform_stats(
    session: AsyncSession, source: str = "live", now: datetime | None = None
) -> dict[str, Any]:
    """Landing-page summary: totals, per-stage counts, top cohorts, 6-month growth, badges."""
    now = now or datetime.now(timezone.utc)

    metrics = activity_metrics_relation(source)
    stage_rows = (await session.execute(select(metrics))).mappings().all()
    by_stage = stage_breakdown(stage_rows)

    total_educators = (
        await session.execute(
            select(func.count(User.id)).where(User.role == "PARTICIPANT", User.user_type == "EDUCATOR")
        )
    ).scalar_one()
    total_points = (
        await session.execute(select(func.coalesce(func.sum(PointsLedger.delta_points), 0)))
    ).scalar_one()

    badge_counts = (
        await session.execute(
            select(
                EarnedBadge.badge_code,
                func.count(EarnedBadge.id).label("count"),
                func.count(func.distinct(EarnedBadge.user_id)).label("unique_earners"),
            )
            .group_by(EarnedBadge.badge_code)
            .order_by(func.count(EarnedBadge.id).desc())
        )
    ).mappings().all()
    catalog = (await session.execute(select(Badge.code, Badge.name))).mappings().all()

    stats = {
        "totalEducators": int(total_educators),
        "totalSubmissions": sum(s["total"] for s in by_stage.values()),
        "totalPoints": int(total_points),
        "studentsImpacted": await _students_impacted(session),
        "byStage": by_stage,
        "topCohorts": await _top_cohorts(session),
        "monthlyGrowth": await _growth(session, now),
        "badges": {
            "totalAwarded": sum(int(b["count"]) for b in badge_counts),
            "uniqueBadges": len(catalog),
            "mostPopular": top_badges(badge_counts[:POPULAR_BADGES_LIMIT], catalog),
        },
        "_meta": {"source": source, "generatedAt": now.isoformat()},
    }
    logger.debug("platform_stats_computed", source=source)
    return stats
