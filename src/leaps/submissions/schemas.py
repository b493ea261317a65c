"""Pydantic schemas for submission endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from leaps.domain import parse_activity_code

MAX_ATTACHMENTS = 10


class AttachmentIn(BaseModel):
    path: str = Field(..., min_length=1, max_length=1024)
    hash: str = Field(..., min_length=8, max_length=128, pattern=r"^[A-Fa-f0-9]+$")


class SubmissionCreate(BaseModel):
    activity_code: str
    payload: dict[str, Any]
    visibility: Literal["PUBLIC", "PRIVATE"] = "PRIVATE"
    attachments: list[AttachmentIn] = Field(default_factory=list, max_length=MAX_ATTACHMENTS)

    @field_validator("activity_code")
    @classmethod
    def _activity(cls, v: str) -> str:
        code = parse_activity_code(v)
        if code is None:
            msg = "activity_code must be one of LEARN, EXPLORE, AMPLIFY, PRESENT, SHINE"
            raise ValueError(msg)
        return code

    @field_validator("attachments")
    @classmethod
    def _unique_hashes(cls, v: list[AttachmentIn]) -> list[AttachmentIn]:
        hashes = [a.hash.lower() for a in v]
        if len(hashes) != len(set(hashes)):
            msg = "attachments must not repeat the same content hash"
            raise ValueError(msg)
        return v


class AttachmentOut(BaseModel):
    path: str
    hash: str


class SubmissionOut(BaseModel):
    id: str
    user_id: str
    activity_code: str
    status: str
    visibility: str
    payload: dict[str, Any]
    reviewer_id: str | None = None
    review_note: str | None = None
    attachments: list[AttachmentOut] = []
    created_at: datetime
    updated_at: datetime


class ReviewRequest(BaseModel):
    action: Literal["approve", "reject"]
    note: str | None = Field(None, max_length=2000)
    points_adjustment: int | None = Field(None, ge=0, le=1000)


class ReviewResult(BaseModel):
    submission: SubmissionOut
    points_awarded: int
    badges_granted: list[str]
