"""Tests for the per-stage metrics builder."""

import pytest

from leaps.analytics.stage_metrics import build_stage_metrics, get_stage_metrics
from leaps.errors import InvalidQueryError


class TestBuildStageMetrics:
    def test_zero_submissions_is_zeroed(self):
        metrics = build_stage_metrics(
            "LEARN", total=0, approved=0, pending=0, rejected=0, unique_educators=0, stage_points=0
        )
        assert metrics["totalSubmissions"] == 0
        assert metrics["approvedSubmissions"] == 0
        assert metrics["pendingSubmissions"] == 0
        assert metrics["rejectedSubmissions"] == 0
        assert metrics["completionRate"] == 0
        assert metrics["avgPointsEarned"] == 0
        assert metrics["topSchools"] == []
        assert metrics["monthlyTrend"] == []

    def test_average_and_completion(self):
        metrics = build_stage_metrics(
            "EXPLORE", total=8, approved=4, pending=3, rejected=1, unique_educators=5, stage_points=200
        )
        assert metrics["avgPointsEarned"] == 50
        assert metrics["completionRate"] == 0.5

    def test_top_five_schools(self):
        schools = [(f"School {i}", i) for i in range(1, 8)] + [(None, 100)]
        metrics = build_stage_metrics(
            "LEARN", total=1, approved=1, pending=0, rejected=0, unique_educators=1, stage_points=20, schools=schools
        )
        assert [s["name"] for s in metrics["topSchools"]] == [f"School {i}" for i in (7, 6, 5, 4, 3)]

    def test_monthly_trend_sorted(self):
        monthly = [
            {"month": "2025-03", "submissions": 1, "approvals": 0},
            {"month": "2025-01", "submissions": 4, "approvals": 2},
        ]
        metrics = build_stage_metrics(
            "LEARN", total=5, approved=2, pending=3, rejected=0, unique_educators=2, stage_points=40, monthly=monthly
        )
        assert [m["month"] for m in metrics["monthlyTrend"]] == ["2025-01", "2025-03"]


@pytest.mark.asyncio
async def test_unknown_stage_is_validation_error():
    """Stage names are checked before any query runs."""
    with pytest.raises(InvalidQueryError):
        await get_stage_metrics(session=None, stage="dance")  # type: ignore[arg-type]
