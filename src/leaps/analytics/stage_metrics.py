"""Per-stage submission metrics."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.analytics.sources import month_label
from leaps.analytics.stats import completion_rate
from leaps.db.models import PointsLedger, Submission, User
from leaps.domain import parse_activity_code
from leaps.errors import InvalidQueryError

logger = structlog.get_logger()

TOP_SCHOOLS_LIMIT = 5


def build_stage_metrics(
    stage: str,
    *,
    total: int,
    approved: int,
    pending: int,
    rejected: int,
    unique_educators: int,
    stage_points: int,
    schools: Iterable[tuple[str | None, int]] = (),
    cohorts: Iterable[tuple[str | None, int]] = (),
    monthly: Iterable[Mapping[str, Any]] = (),
) -> dict[str, Any]:
    """Assemble the stage report from raw counts.

    Average points divide the stage's ledger total by the approved count.
    Schools and cohorts without a name are left out.
    """
    top_schools = sorted(
        ({"name": name, "count": int(count)} for name, count in schools if name),
        key=lambda s: (-s["count"], s["name"]),
    )[:TOP_SCHOOLS_LIMIT]
    cohort_breakdown = sorted(
        ({"cohort": cohort, "count": int(count)} for cohort, count in cohorts if cohort),
        key=lambda c: (-c["count"], c["cohort"]),
    )
    trend = sorted(
        (
            {"month": m["month"], "submissions": int(m["submissions"]), "approvals": int(m["approvals"])}
            for m in monthly
        ),
        key=lambda m: m["month"],
    )
    return {
        "stage": stage,
        "totalSubmissions": total,
        "approvedSubmissions": approved,
        "pendingSubmissions": pending,
        "rejectedSubmissions": rejected,
        "avgPointsEarned": stage_points / approved if approved > 0 else 0,
        "uniqueEducators": unique_educators,
        "topSchools": top_schools,
        "cohortBreakdown": cohort_breakdown,
        "monthlyTrend": trend,
        "completionRate": completion_rate(approved, total),
    }


async def get_stage_metrics(session: AsyncSession, stage: str) -> dict[str, Any]:
    """Metrics for one stage. Accepts `learn` or `LEARN`; anything else is a validation error."""
    code = parse_activity_code(stage)
    if code is None:
        msg = f"Unknown stage '{stage}'"
        raise InvalidQueryError(msg, details={"stage": stage})

    counts = (
        await session.execute(
            select(
                func.count(Submission.id),
                func.count(Submission.id).filter(Submission.status == "APPROVED"),
                func.count(Submission.id).filter(Submission.status == "PENDING"),
                func.count(Submission.id).filter(Submission.status == "REJECTED"),
                func.count(distinct(Submission.user_id)),
            ).where(Submission.activity_code == code)
        )
    ).one()

    stage_points = (
        await session.execute(
            select(func.coalesce(func.sum(PointsLedger.delta_points), 0)).where(
                PointsLedger.activity_code == code
            )
        )
    ).scalar_one()

    submitters = select(Submission.user_id).where(Submission.activity_code == code)
    schools = (
        await session.execute(
            select(User.school, func.count(User.id))
            .where(User.id.in_(submitters), User.school.is_not(None))
            .group_by(User.school)
        )
    ).all()
    cohorts = (
        await session.execute(
            select(User.cohort, func.count(User.id))
            .where(User.id.in_(submitters), User.cohort.is_not(None))
            .group_by(User.cohort)
        )
    ).all()

    month = month_label(Submission.created_at)
    monthly = (
        await session.execute(
            select(
                month.label("month"),
                func.count(Submission.id).label("submissions"),
                func.count(Submission.id).filter(Submission.status == "APPROVED").label("approvals"),
            )
            .where(Submission.activity_code == code)
            .group_by(month)
            .order_by(month)
        )
    ).mappings().all()

    total, approved, pending, rejected, unique_educators = counts
    logger.debug("stage_metrics_computed", stage=code, total=total)
    return build_stage_metrics(
        code,
        total=total,
        approved=approved,
        pending=pending,
        rejected=rejected,
        unique_educators=unique_educators,
        stage_points=int(stage_points),
        schools=[(r[0], r[1]) for r in schools],
        cohorts=[(r[0], r[1]) for r in cohorts],
        monthly=monthly,
    )
