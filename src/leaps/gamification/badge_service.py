"""Badge grants driven by the catalog's JSON criteria."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.db.models import Badge, EarnedBadge, Submission
from leaps.domain import parse_activity_code

logger = logging.getLogger(__name__)


def criteria_met(criteria: Mapping[str, Any] | None, approved_counts: Mapping[str, int]) -> bool:
    """True if `{"activity": code, "approved_count": n}` is satisfied.

    Criteria with an unknown activity or any other shape never match.
    """
    if not criteria:
        return False
    code = parse_activity_code(criteria.get("activity"))
    if code is None:
        return False
    try:
        required = int(criteria.get("approved_count", 1))
    except (TypeError, ValueError):
        return False
    return approved_counts.get(code, 0) >= max(required, 1)


def badges_to_grant(
    catalog: list[Mapping[str, Any]],
    approved_counts: Mapping[str, int],
    already_earned: set[str],
) -> list[str]:
    """Codes of catalog badges the user qualifies for but does not hold yet."""
    return [
        badge["code"]
        for badge in catalog
        if badge["code"] not in already_earned and criteria_met(badge.get("criteria"), approved_counts)
    ]


async def get_earned_badge_codes(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(select(EarnedBadge.badge_code).where(EarnedBadge.user_id == user_id))
    return set(result.scalars())


async def grant_badges_for_user(db: AsyncSession, user_id: str) -> list[str]:
    """Grant every badge whose criteria the user now meets. Returns newly granted codes.

    Inserts ignore duplicates, so concurrent approvals for the same user
    cannot produce a second grant.
    """
    counts_result = await db.execute(
        select(Submission.activity_code, func.count(Submission.id))
        .where(Submission.user_id == user_id, Submission.status == "APPROVED")
        .group_by(Submission.activity_code)
    )
    approved_counts = {code: int(n) for code, n in counts_result}

    catalog_result = await db.execute(select(Badge.code, Badge.criteria))
    catalog = [dict(row._mapping) for row in catalog_result]

    candidates = badges_to_grant(catalog, approved_counts, await get_earned_badge_codes(db, user_id))
    granted: list[str] = []
    for code in candidates:
        stmt = (
            pg_insert(EarnedBadge)
            .values(user_id=user_id, badge_code=code)
            .on_conflict_do_nothing(index_elements=["user_id", "badge_code"])
            .returning(EarnedBadge.id)
        )
        if (await db.execute(stmt)).scalar_one_or_none() is not None:
            granted.append(code)

    if granted:
        logger.info("Granted badges %s to user %s", granted, user_id)
    return granted
