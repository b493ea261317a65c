"""Analytics response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class BadgeSummary(BaseModel):
    code: str
    name: str
    icon_url: str | None = None


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    handle: str | None = None
    name: str | None = None
    avatar_url: str | None = None
    school: str | None = None
    cohort: str | None = None
    total_points: int
    public_submissions: int
    last_activity_at: str | None = None
    stage_points: dict[str, int]
    badges: list[BadgeSummary] = []


class LeaderboardPage(BaseModel):
    period: str
    entries: list[LeaderboardEntry]
    total: int
    limit: int
    offset: int
    has_more: bool


class SchoolCount(BaseModel):
    name: str
    count: int


class CohortCount(BaseModel):
    cohort: str
    count: int


class MonthlyTrend(BaseModel):
    month: str
    submissions: int
    approvals: int


class StageMetrics(BaseModel):
    """Per-stage metrics. Keys stay camelCase on the wire."""

    stage: str
    totalSubmissions: int  # noqa: N815
    approvedSubmissions: int  # noqa: N815
    pendingSubmissions: int  # noqa: N815
    rejectedSubmissions: int  # noqa: N815
    avgPointsEarned: float  # noqa: N815
    uniqueEducators: int  # noqa: N815
    topSchools: list[SchoolCount]  # noqa: N815
    cohortBreakdown: list[CohortCount]  # noqa: N815
    monthlyTrend: list[MonthlyTrend]  # noqa: N815
    completionRate: float  # noqa: N815


class ViewRefreshResult(BaseModel):
    view_name: str
    refresh_duration_ms: int
    row_count: int
    success: bool
    error: str | None = None


class RefreshSummary(BaseModel):
    success: bool
    timestamp: str
    total_duration_ms: int
    materialized_views: dict[str, Any]
    maintenance: dict[str, Any]
    performance: dict[str, Any]
