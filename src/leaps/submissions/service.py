"""Submission store and the reviewer approval flow.

Points are only written once a reviewer approves: the approval inserts a
FORM ledger row keyed `submission:<id>` and then re-evaluates badges, all
in the caller's transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leaps.db.models import Submission, SubmissionAttachment, User
from leaps.domain import ACTIVITY_CODES, VISIBILITIES
from leaps.errors import ConflictError, InvalidQueryError, NotFoundError
from leaps.gamification.badge_service import grant_badges_for_user
from leaps.ledger.scoring import compute_points
from leaps.ledger.service import append_entry, submission_event_id

logger = logging.getLogger(__name__)


def submission_to_dict(submission: Submission) -> dict[str, Any]:
    return {
        "id": submission.id,
        "user_id": submission.user_id,
        "activity_code": submission.activity_code,
        "status": submission.status,
        "visibility": submission.visibility,
        "payload": submission.payload,
        "reviewer_id": submission.reviewer_id,
        "review_note": submission.review_note,
        "attachments": [{"path": a.path, "hash": a.hash} for a in submission.attachments],
        "created_at": submission.created_at,
        "updated_at": submission.updated_at,
    }


async def get_submission(db: AsyncSession, submission_id: str, *, for_update: bool = False) -> Submission:
    query = (
        select(Submission)
        .where(Submission.id == submission_id)
        .options(selectinload(Submission.attachments))
    )
    if for_update:
        query = query.with_for_update(of=Submission)
    submission = (await db.execute(query)).scalar_one_or_none()
    if submission is None:
        msg = f"Submission {submission_id} not found"
        raise NotFoundError(msg)
    return submission


async def create_submission(
    db: AsyncSession,
    user_id: str,
    activity_code: str,
    payload: dict[str, Any],
    visibility: str = "PRIVATE",
    attachments: Sequence[Mapping[str, str]] = (),
) -> Submission:
    """Store a PENDING submission with its attachments. The payload is kept exactly as given."""
    if activity_code not in ACTIVITY_CODES:
        msg = f"Unknown activity code '{activity_code}'"
        raise InvalidQueryError(msg)
    if visibility not in VISIBILITIES:
        msg = f"Unknown visibility '{visibility}'"
        raise InvalidQueryError(msg)
    if await db.get(User, user_id) is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)

    now = datetime.now(timezone.utc)
    submission = Submission(
        user_id=user_id,
        activity_code=activity_code,
        status="PENDING",
        visibility=visibility,
        payload=payload,
        created_at=now,
        updated_at=now,
        attachments=[SubmissionAttachment(path=a["path"], hash=a["hash"].lower()) for a in attachments],
    )
    db.add(submission)
    await db.flush()
    logger.info("Submission %s created for user %s (%s)", submission.id, user_id, activity_code)
    return submission


async def review_submission(
    db: AsyncSession,
    submission_id: str,
    reviewer_id: str,
    action: str,
    note: str | None = None,
    points_adjustment: int | None = None,
) -> dict[str, Any]:
    """Approve or reject a PENDING submission.

    Returns the updated submission, the points credited (0 on reject or
    when the ledger already held this submission's event) and any badges
    granted as a result.
    """
    if action not in ("approve", "reject"):
        msg = "action must be 'approve' or 'reject'"
        raise InvalidQueryError(msg)

    submission = await get_submission(db, submission_id, for_update=True)
    if submission.status != "PENDING":
        msg = f"Submission {submission_id} is already {submission.status}"
        raise ConflictError(msg, details={"status": submission.status})

    submission.reviewer_id = reviewer_id
    submission.review_note = note
    submission.updated_at = datetime.now(timezone.utc)

    points_awarded = 0
    badges: list[str] = []
    if action == "reject":
        submission.status = "REJECTED"
        await db.flush()
    else:
        submission.status = "APPROVED"
        await db.flush()
        points = points_adjustment if points_adjustment is not None else compute_points(
            submission.activity_code, submission.payload
        )
        written = await append_entry(
            db,
            user_id=submission.user_id,
            activity_code=submission.activity_code,
            delta_points=points,
            source="FORM",
            external_event_id=submission_event_id(submission.id),
        )
        points_awarded = points if written else 0
        badges = await grant_badges_for_user(db, submission.user_id)

    logger.info(
        "Submission %s %s by %s (%d points)",
        submission_id,
        submission.status.lower(),
        reviewer_id,
        points_awarded,
    )
    return {"submission": submission, "points_awarded": points_awarded, "badges_granted": badges}
