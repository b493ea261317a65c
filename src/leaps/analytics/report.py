"""Composite admin analytics report.

Five sections (overview, distributions, trends, recentActivity,
performance) built from the same filters. By default every section runs
sequentially inside one REPEATABLE READ, READ ONLY transaction so the
report reflects a single snapshot. With the consistent snapshot disabled
the sections fan out concurrently, one session each. In both modes a
failing section fails the whole report, and each section is bounded by a
timeout.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import BigInteger, String, distinct, func, literal, null, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leaps.analytics.distributions import (
    DistributionResult,
    daily_counts,
    daily_submission_stats,
    map_distributions,
    reviewer_performance,
    top_badges,
)
from leaps.analytics.filters import AnalyticsFilters, cohort_condition, cohort_members, combined, window_condition
from leaps.analytics.sources import leaderboard_relation
from leaps.analytics.stats import activation_rate, approval_rate, points_distribution, points_histogram, round2
from leaps.config import Settings
from leaps.db.models import Activity, Badge, EarnedBadge, PointsLedger, Submission, User
from leaps.domain import REVIEWER_ROLES
from leaps.errors import DataShapeError, SectionTimeoutError

logger = structlog.get_logger()

TOP_BADGES_LIMIT = 10


@dataclass
class ReportOptions:
    source: str = "live"
    consistent: bool = True
    section_timeout: float = 15.0
    strict_rows: bool = False
    trend_days: int = 30
    recent_limit: int = 10
    points_buckets: list[int] = field(default_factory=lambda: [0, 50, 100, 200, 500])
    points_quantiles: int | None = None

    @classmethod
    def from_settings(cls, settings: Settings, source: str | None = None) -> ReportOptions:
        return cls(
            source=source or settings.analytics_default_source,
            consistent=settings.analytics_consistent_snapshot,
            section_timeout=settings.analytics_section_timeout_seconds,
            strict_rows=settings.analytics_strict_rows,
            trend_days=settings.analytics_trend_days,
            recent_limit=settings.analytics_recent_limit,
            points_buckets=list(settings.analytics_points_buckets),
            points_quantiles=settings.analytics_points_quantiles,
        )


@dataclass
class ReportContext:
    filters: AnalyticsFilters
    options: ReportOptions
    log: Any
    now: datetime
    rejected_rows: list[dict[str, Any]] = field(default_factory=list)

    @property
    def submission_scope(self) -> Any:  # noqa: ANN401
        return combined(
            window_condition(Submission.created_at, self.filters),
            cohort_members(Submission.user_id, self.filters),
        )

    @property
    def ledger_scope(self) -> Any:  # noqa: ANN401
        return combined(
            window_condition(PointsLedger.created_at, self.filters),
            cohort_members(PointsLedger.user_id, self.filters),
        )

    @property
    def user_scope(self) -> Any:  # noqa: ANN401
        return cohort_condition(User.cohort, self.filters)


Section = Callable[[AsyncSession, ReportContext], Awaitable[dict[str, Any]]]


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


async def build_overview(session: AsyncSession, ctx: ReportContext) -> dict[str, Any]:
    scope = ctx.submission_scope
    total, pending, approved, rejected = (
        await session.execute(
            select(
                func.count(Submission.id),
                func.count(Submission.id).filter(Submission.status == "PENDING"),
                func.count(Submission.id).filter(Submission.status == "APPROVED"),
                func.count(Submission.id).filter(Submission.status == "REJECTED"),
            ).where(scope)
        )
    ).one()

    has_submission = select(Submission.id).where(Submission.user_id == User.id).exists()
    has_approved = (
        select(Submission.id).where(Submission.user_id == User.id, Submission.status == "APPROVED").exists()
    )
    has_badge = select(EarnedBadge.id).where(EarnedBadge.user_id == User.id).exists()
    users_total, users_active, users_approved, users_badged = (
        await session.execute(
            select(
                func.count(User.id),
                func.count(User.id).filter(has_submission),
                func.count(User.id).filter(has_approved),
                func.count(User.id).filter(has_badge),
            ).where(ctx.user_scope)
        )
    ).one()

    points_total, points_entries = (
        await session.execute(
            select(
                func.coalesce(func.sum(PointsLedger.delta_points), 0),
                func.count(PointsLedger.id),
            ).where(ctx.ledger_scope)
        )
    ).one()

    badges_total = (await session.execute(select(func.count()).select_from(Badge))).scalar_one()
    earned_total, earners = (
        await session.execute(select(func.count(EarnedBadge.id), func.count(distinct(EarnedBadge.user_id))))
    ).one()

    review_hours = func.extract("epoch", Submission.updated_at - Submission.created_at) / 3600.0
    avg_review = (
        await session.execute(
            select(func.avg(review_hours)).where(
                scope,
                Submission.status.in_(("APPROVED", "REJECTED")),
                Submission.reviewer_id.is_not(None),
            )
        )
    ).scalar_one()

    return {
        "submissions": {
            "total": total,
            "pending": pending,
            "approved": approved,
            "rejected": rejected,
            "approvalRate": round2(approval_rate(approved, rejected)),
        },
        "users": {
            "total": users_total,
            "active": users_active,
            "withApprovedSubmissions": users_approved,
            "withBadges": users_badged,
            "activationRate": round2(activation_rate(users_active, users_total)),
        },
        "points": {
            "totalAwarded": int(points_total),
            "totalEntries": points_entries,
            "avgPerEntry": round2(int(points_total) / points_entries) if points_entries else 0,
        },
        "badges": {"totalBadges": badges_total, "totalEarned": earned_total, "uniqueEarners": earners},
        "reviews": {"pendingReviews": pending, "avgReviewTimeHours": round2(float(avg_review or 0))},
    }


# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------


def distribution_query(ctx: ReportContext) -> Any:  # noqa: ANN401
    """One UNION ALL over every grouped distribution, tagged by category."""
    no_points = null().cast(BigInteger)
    by_status = (
        select(
            literal("status", String).label("category"),
            Submission.status.label("item"),
            Submission.status.label("item_name"),
            func.count(Submission.id).label("count"),
            no_points.label("points"),
        )
        .where(ctx.submission_scope)
        .group_by(Submission.status)
    )
    by_activity = (
        select(
            literal("activity", String),
            Submission.activity_code,
            Activity.name,
            func.count(Submission.id),
            no_points,
        )
        .join(Activity, Activity.code == Submission.activity_code)
        .where(ctx.submission_scope)
        .group_by(Submission.activity_code, Activity.name)
    )
    by_role = (
        select(literal("role", String), User.role, User.role, func.count(User.id), no_points)
        .where(ctx.user_scope)
        .group_by(User.role)
    )
    # NULL cohorts are labelled by the mapper
    by_cohort = select(
        literal("cohort", String), User.cohort, User.cohort, func.count(User.id), no_points
    ).group_by(User.cohort)
    points_by_activity = (
        select(
            literal("points_activity", String),
            PointsLedger.activity_code,
            Activity.name,
            func.count(PointsLedger.id),
            func.sum(PointsLedger.delta_points).cast(BigInteger),
        )
        .join(Activity, Activity.code == PointsLedger.activity_code)
        .where(ctx.ledger_scope)
        .group_by(PointsLedger.activity_code, Activity.name)
    )
    return union_all(by_status, by_activity, by_role, by_cohort, points_by_activity)


def finalize_distributions(result: DistributionResult, ctx: ReportContext) -> dict[str, list[dict[str, Any]]]:
    """Apply the rejected-row policy, then order each bucket for display."""
    if result.rejected:
        reasons = [{"category": o.row.category, "item": o.row.item, "reason": o.reason} for o in result.rejected]
        if ctx.options.strict_rows:
            msg = f"{len(reasons)} distribution rows could not be mapped"
            raise DataShapeError(msg, details=reasons)
        for r in reasons:
            ctx.log.warning("distribution_row_rejected", **r)
        ctx.rejected_rows.extend(reasons)

    buckets = result.buckets
    for name in ("submissionsByStatus", "submissionsByActivity", "usersByRole", "usersByCohort"):
        buckets[name].sort(key=lambda e: e["count"], reverse=True)
    buckets["pointsByActivity"].sort(key=lambda e: e["totalPoints"], reverse=True)
    return buckets


async def build_distributions(session: AsyncSession, ctx: ReportContext) -> dict[str, Any]:
    rows = (await session.execute(distribution_query(ctx))).mappings().all()
    buckets = finalize_distributions(map_distributions(rows), ctx)

    rel = leaderboard_relation(ctx.options.source, "all")
    totals = (
        await session.execute(select(rel.c.total_points).where(cohort_condition(rel.c.cohort, ctx.filters)))
    ).scalars().all()
    values = [int(t) for t in totals if t is not None]

    return {
        **buckets,
        "pointsDistribution": points_histogram(
            values, ctx.options.points_buckets, ctx.options.points_quantiles
        ),
        "pointsSummary": points_distribution(values),
    }


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------


async def build_trends(session: AsyncSession, ctx: ReportContext) -> dict[str, Any]:
    start, end = ctx.filters.trend_window(ctx.options.trend_days, ctx.now)
    submissions = (
        await session.execute(
            select(Submission.created_at, Submission.status).where(
                Submission.created_at.between(start, end),
                cohort_members(Submission.user_id, ctx.filters),
            )
        )
    ).all()
    registrations = (
        await session.execute(
            select(User.created_at).where(User.created_at.between(start, end), ctx.user_scope)
        )
    ).scalars().all()
    return {
        "submissionsByDate": daily_submission_stats((r[0], r[1]) for r in submissions),
        "userRegistrationsByDate": daily_counts(registrations),
    }


# ---------------------------------------------------------------------------
# Recent activity
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


async def build_recent_activity(session: AsyncSession, ctx: ReportContext) -> dict[str, Any]:
    limit = ctx.options.recent_limit
    submissions = (
        await session.execute(
            select(
                Submission.id,
                Submission.user_id,
                User.name.label("user_name"),
                Submission.activity_code,
                Activity.name.label("activity_name"),
                Submission.status,
                Submission.created_at,
            )
            .join(User, User.id == Submission.user_id)
            .join(Activity, Activity.code == Submission.activity_code)
            .order_by(Submission.created_at.desc())
            .limit(limit)
        )
    ).mappings().all()

    reviewer = User.__table__.alias("reviewer")
    ledger_points = (
        select(func.coalesce(func.sum(PointsLedger.delta_points), 0))
        .where(
            PointsLedger.user_id == Submission.user_id,
            PointsLedger.external_event_id == func.concat("submission:", Submission.id),
        )
        .scalar_subquery()
    )
    approvals = (
        await session.execute(
            select(
                Submission.id,
                Submission.user_id,
                User.name.label("user_name"),
                reviewer.c.name.label("reviewer_name"),
                Submission.activity_code,
                Activity.name.label("activity_name"),
                Submission.updated_at.label("approved_at"),
                ledger_points.label("points_awarded"),
            )
            .join(User, User.id == Submission.user_id)
            .join(Activity, Activity.code == Submission.activity_code)
            .outerjoin(reviewer, reviewer.c.id == Submission.reviewer_id)
            .where(Submission.status == "APPROVED")
            .order_by(Submission.updated_at.desc())
            .limit(limit)
        )
    ).mappings().all()

    users = (
        await session.execute(
            select(User.id, User.name, User.handle, User.cohort, User.created_at)
            .order_by(User.created_at.desc())
            .limit(limit)
        )
    ).mappings().all()

    return {
        "submissions": [{**s, "created_at": _iso(s["created_at"])} for s in submissions],
        "approvals": [
            {**a, "approved_at": _iso(a["approved_at"]), "points_awarded": int(a["points_awarded"] or 0)}
            for a in approvals
        ],
        "users": [{**u, "created_at": _iso(u["created_at"])} for u in users],
    }


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------


async def build_performance(session: AsyncSession, ctx: ReportContext) -> dict[str, Any]:
    reviewers = (
        await session.execute(
            select(User.id, User.name, User.handle, User.role).where(User.role.in_(REVIEWER_ROLES))
        )
    ).mappings().all()
    performance = (
        await session.execute(
            select(
                Submission.reviewer_id,
                Submission.status,
                func.count(Submission.id).label("count"),
            )
            .where(
                Submission.reviewer_id.in_([r["id"] for r in reviewers]),
                Submission.status.in_(("APPROVED", "REJECTED")),
                window_condition(Submission.created_at, ctx.filters),
            )
            .group_by(Submission.reviewer_id, Submission.status)
        )
    ).mappings().all() if reviewers else []

    badge_counts = (
        await session.execute(
            select(
                EarnedBadge.badge_code,
                func.count(EarnedBadge.id).label("count"),
                func.count(distinct(EarnedBadge.user_id)).label("unique_earners"),
            )
            .group_by(EarnedBadge.badge_code)
            .order_by(func.count(EarnedBadge.id).desc(), EarnedBadge.badge_code)
            .limit(TOP_BADGES_LIMIT)
        )
    ).mappings().all()
    catalog = (await session.execute(select(Badge.code, Badge.name))).mappings().all()

    return {
        "reviewers": reviewer_performance(reviewers, performance),
        "topBadges": top_badges(badge_counts, catalog),
    }


SECTIONS: dict[str, Section] = {
    "overview": build_overview,
    "distributions": build_distributions,
    "trends": build_trends,
    "recentActivity": build_recent_activity,
    "performance": build_performance,
}


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def _bounded(name: str, coro: Awaitable[dict[str, Any]], timeout: float) -> dict[str, Any]:
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as exc:
        msg = f"Report section '{name}' timed out after {timeout:g}s"
        raise SectionTimeoutError(msg, details={"section": name}) from exc


async def _run_snapshot(
    session_factory: async_sessionmaker[AsyncSession], ctx: ReportContext, sections: dict[str, Section]
) -> dict[str, Any]:
    results: dict[str, Any] = {}
    async with session_factory() as session:
        await session.connection(
            execution_options={"isolation_level": "REPEATABLE READ", "postgresql_readonly": True}
        )
        for name, build in sections.items():
            results[name] = await _bounded(name, build(session, ctx), ctx.options.section_timeout)
        await session.rollback()
    return results


async def _run_fanout(
    session_factory: async_sessionmaker[AsyncSession], ctx: ReportContext, sections: dict[str, Section]
) -> dict[str, Any]:
    async def run(name: str, build: Section) -> dict[str, Any]:
        async with session_factory() as session:
            return await _bounded(name, build(session, ctx), ctx.options.section_timeout)

    tasks = {name: asyncio.create_task(run(name, build)) for name, build in sections.items()}
    try:
        await asyncio.gather(*tasks.values())
    except BaseException:
        for task in tasks.values():
            task.cancel()
        # Let cancelled sections leave their session blocks before the error propagates
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        raise
    return {name: task.result() for name, task in tasks.items()}


async def build_report(
    session_factory: async_sessionmaker[AsyncSession],
    filters: AnalyticsFilters,
    options: ReportOptions | None = None,
    log: Any = None,  # noqa: ANN401
    sections: dict[str, Section] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the full report. `log` defaults to the module logger."""
    options = options or ReportOptions()
    log = (log or logger).bind(report="admin_analytics", source=options.source)
    ctx = ReportContext(filters=filters, options=options, log=log, now=now or datetime.now(timezone.utc))
    sections = sections or SECTIONS

    started = datetime.now(timezone.utc)
    if options.consistent:
        results = await _run_snapshot(session_factory, ctx, sections)
    else:
        results = await _run_fanout(session_factory, ctx, sections)
    duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)

    log.info(
        "analytics_report_built",
        consistent=options.consistent,
        duration_ms=duration_ms,
        rejected_rows=len(ctx.rejected_rows),
        **filters.describe(),
    )
    return {
        **results,
        "_meta": {
            "source": options.source,
            "consistent": options.consistent,
            "filters": filters.describe(),
            "rejected_rows": len(ctx.rejected_rows),
            "generatedAt": ctx.now.isoformat(),
            "durationMs": duration_ms,
        },
    }
