"""Submission endpoints: create evidence, and reviewer approve/reject."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.analytics.leaderboard import invalidate_leaderboard_cache
from leaps.auth.dependencies import Caller, get_current_caller, require_role
from leaps.database import get_session
from leaps.redis_client import get_redis_or_none
from leaps.schemas import DataResponse
from leaps.submissions.schemas import ReviewRequest, ReviewResult, SubmissionCreate, SubmissionOut
from leaps.submissions.service import create_submission, review_submission, submission_to_dict

router = APIRouter(prefix="/api/v1", tags=["Submissions"])


@router.post("/submissions", response_model=DataResponse[SubmissionOut], status_code=201)
async def submit_evidence(
    body: SubmissionCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Submit evidence for one stage on behalf of the caller."""
    submission = await create_submission(
        db,
        user_id=caller.user_id,
        activity_code=body.activity_code,
        payload=body.payload,
        visibility=body.visibility,
        attachments=[a.model_dump() for a in body.attachments],
    )
    await db.commit()
    return {"data": submission_to_dict(submission)}


@router.post("/admin/submissions/{submission_id}/review", response_model=DataResponse[ReviewResult])
async def review(
    submission_id: str,
    body: ReviewRequest,
    caller: Caller = Depends(require_role("REVIEWER")),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Approve or reject a pending submission."""
    result = await review_submission(
        db,
        submission_id,
        reviewer_id=caller.user_id,
        action=body.action,
        note=body.note,
        points_adjustment=body.points_adjustment,
    )
    await db.commit()

    if result["points_awarded"]:
        await invalidate_leaderboard_cache(get_redis_or_none())

    return {
        "data": {
            "submission": submission_to_dict(result["submission"]),
            "points_awarded": result["points_awarded"],
            "badges_granted": result["badges_granted"],
        }
    }
