"""Ledger balance endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.auth.dependencies import Caller, get_current_caller
from leaps.database import get_session
from leaps.errors import ForbiddenError
from leaps.ledger.service import get_balance, get_balance_by_activity
from leaps.schemas import DataResponse

router = APIRouter(prefix="/api/v1", tags=["Ledger"])


class BalanceOut(BaseModel):
    user_id: str
    balance: int
    by_activity: dict[str, int]


@router.get("/users/{user_id}/balance", response_model=DataResponse[BalanceOut])
async def user_balance(
    user_id: str,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """A user's point balance. Users see their own; reviewers and above see anyone's."""
    if caller.user_id != user_id and not caller.has_role("REVIEWER"):
        msg = "You can only view your own balance"
        raise ForbiddenError(msg)
    return {
        "data": {
            "user_id": user_id,
            "balance": await get_balance(db, user_id),
            "by_activity": await get_balance_by_activity(db, user_id),
        }
    }
