"""Append-only points ledger.

Balances are never stored: a user's balance is SUM(delta_points) over
their rows. Entries that carry an external event id are idempotent per
user, so webhook retries and repeated approvals credit points once.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.db.models import PointsLedger
from leaps.domain import ACTIVITY_CODES, LEDGER_SOURCES
from leaps.errors import InvalidQueryError

logger = logging.getLogger(__name__)


def submission_event_id(submission_id: str) -> str:
    """External event id used for the ledger row of an approved submission."""
    return f"submission:{submission_id}"


async def append_entry(
    db: AsyncSession,
    user_id: str,
    activity_code: str,
    delta_points: int,
    source: str,
    external_event_id: str | None = None,
    external_source: str | None = None,
) -> bool:
    """Insert a ledger row. Returns True if written, False if the event was already recorded."""
    if activity_code not in ACTIVITY_CODES:
        msg = f"Unknown activity code '{activity_code}'"
        raise InvalidQueryError(msg)
    if source not in LEDGER_SOURCES:
        msg = f"Unknown ledger source '{source}'"
        raise InvalidQueryError(msg)

    stmt = pg_insert(PointsLedger).values(
        user_id=user_id,
        activity_code=activity_code,
        source=source,
        delta_points=delta_points,
        external_source=external_source,
        external_event_id=external_event_id,
    )
    if external_event_id is not None:
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[PointsLedger.user_id, PointsLedger.external_event_id],
            index_where=PointsLedger.external_event_id.is_not(None),
        )
    result = await db.execute(stmt.returning(PointsLedger.id))
    written = result.scalar_one_or_none() is not None
    if not written:
        logger.info("Ledger event %s already recorded for user %s", external_event_id, user_id)
    return written


async def get_balance(db: AsyncSession, user_id: str) -> int:
    """Sum of all ledger deltas for the user; 0 when there are none."""
    result = await db.execute(
        select(func.coalesce(func.sum(PointsLedger.delta_points), 0)).where(PointsLedger.user_id == user_id)
    )
    return int(result.scalar_one())


async def get_balance_by_activity(db: AsyncSession, user_id: str) -> dict[str, int]:
    """Per-stage sums, zero-filled."""
    result = await db.execute(
        select(PointsLedger.activity_code, func.sum(PointsLedger.delta_points))
        .where(PointsLedger.user_id == user_id)
        .group_by(PointsLedger.activity_code)
    )
    totals = {code: 0 for code in ACTIVITY_CODES}
    for code, total in result:
        totals[code] = int(total or 0)
    return totals
