"""Data-source strategy: live aggregation over tables, or the materialized views.

Both strategies expose the same column names, so query code selects from
whatever relation `leaderboard_relation` / `activity_metrics_relation`
returns without caring where it came from.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal

from sqlalchemy import ColumnElement, FromClause, Numeric, cast, func, literal, literal_column, select

from leaps.db.models import (
    Activity,
    PointsLedger,
    Submission,
    User,
    activity_metrics,
    leaderboard_30d,
    leaderboard_totals,
)
from leaps.errors import InvalidQueryError

DataSource = Literal["live", "materialized"]
Period = Literal["all", "30d"]

DATA_SOURCES: tuple[str, ...] = ("live", "materialized")
PERIODS: tuple[str, ...] = ("all", "30d")
ROLLING_WINDOW_DAYS = 30


def resolve_source(value: str | None, default: str) -> str:
    """Validate a `source` query value, falling back to the configured default."""
    source = (value or default).lower()
    if source not in DATA_SOURCES:
        msg = f"source must be one of {', '.join(DATA_SOURCES)}"
        raise InvalidQueryError(msg)
    return source


def resolve_period(value: str | None) -> str:
    period = (value or "all").lower()
    if period not in PERIODS:
        msg = f"period must be one of {', '.join(PERIODS)}"
        raise InvalidQueryError(msg)
    return period


def _live_leaderboard(period: str, now: datetime | None = None) -> FromClause:
    since = None
    if period == "30d":
        since = (now or datetime.now(timezone.utc)) - timedelta(days=ROLLING_WINDOW_DAYS)

    ledger = select(
        PointsLedger.user_id,
        func.sum(PointsLedger.delta_points).label("total_points"),
        func.max(PointsLedger.created_at).label("last_points_at"),
    ).group_by(PointsLedger.user_id)
    public = select(
        Submission.user_id,
        func.count(Submission.id).label("public_submissions"),
        func.max(Submission.updated_at).label("last_submission_at"),
    ).where(Submission.status == "APPROVED", Submission.visibility == "PUBLIC")
    if since is not None:
        ledger = ledger.where(PointsLedger.created_at >= since)
        public = public.where(Submission.created_at >= since)
    ledger_sq = ledger.subquery("ledger_sums")
    public_sq = public.group_by(Submission.user_id).subquery("public_counts")

    name = "leaderboard_30d_live" if period == "30d" else "leaderboard_totals_live"
    return (
        select(
            User.id.label("user_id"),
            User.handle,
            User.name,
            User.avatar_url,
            User.school,
            User.cohort,
            ledger_sq.c.total_points,
            func.coalesce(public_sq.c.public_submissions, 0).label("public_submissions"),
            func.greatest(ledger_sq.c.last_points_at, public_sq.c.last_submission_at).label("last_activity_at"),
        )
        .join(ledger_sq, ledger_sq.c.user_id == User.id)
        .outerjoin(public_sq, public_sq.c.user_id == User.id)
        .where(
            User.role == "PARTICIPANT",
            User.user_type == "EDUCATOR",
            ledger_sq.c.total_points > 0,
        )
        .subquery(name)
    )


def leaderboard_relation(source: str, period: str, now: datetime | None = None) -> FromClause:
    """Per-user totals for the period: the refreshed view or the equivalent live query."""
    if source == "materialized":
        return leaderboard_30d if period == "30d" else leaderboard_totals
    return _live_leaderboard(period, now)


def _live_activity_metrics() -> FromClause:
    subs = (
        select(
            Submission.activity_code,
            func.count(Submission.id).label("total_submissions"),
            func.count(Submission.id).filter(Submission.status == "PENDING").label("pending_submissions"),
            func.count(Submission.id).filter(Submission.status == "APPROVED").label("approved_submissions"),
            func.count(Submission.id).filter(Submission.status == "REJECTED").label("rejected_submissions"),
            func.count(Submission.id)
            .filter(Submission.status == "APPROVED", Submission.visibility == "PUBLIC")
            .label("public_submissions"),
        )
        .group_by(Submission.activity_code)
        .subquery("submission_counts")
    )
    points = (
        select(
            PointsLedger.activity_code,
            func.sum(PointsLedger.delta_points).label("total_points_awarded"),
        )
        .group_by(PointsLedger.activity_code)
        .subquery("points_sums")
    )
    approved = func.coalesce(subs.c.approved_submissions, 0)
    awarded = func.coalesce(points.c.total_points_awarded, 0)
    return (
        select(
            Activity.code,
            Activity.name,
            func.coalesce(subs.c.total_submissions, 0).label("total_submissions"),
            func.coalesce(subs.c.pending_submissions, 0).label("pending_submissions"),
            approved.label("approved_submissions"),
            func.coalesce(subs.c.rejected_submissions, 0).label("rejected_submissions"),
            func.coalesce(subs.c.public_submissions, 0).label("public_submissions"),
            awarded.label("total_points_awarded"),
            func.coalesce(cast(awarded, Numeric) / func.nullif(approved, 0), literal(0)).label(
                "avg_points_per_submission"
            ),
        )
        .outerjoin(subs, subs.c.activity_code == Activity.code)
        .outerjoin(points, points.c.activity_code == Activity.code)
        .subquery("activity_metrics_live")
    )


def activity_metrics_relation(source: str) -> FromClause:
    """Per-stage submission counts and points awarded."""
    if source == "materialized":
        return activity_metrics
    return _live_activity_metrics()


def month_label(column: ColumnElement) -> ColumnElement[str]:
    """`to_char(column, 'YYYY-MM')` with the format inlined.

    The format must be a SQL literal, not a bind parameter, for the same
    expression to be accepted in both SELECT and GROUP BY.
    """
    return func.to_char(column, literal_column("'YYYY-MM'"))
