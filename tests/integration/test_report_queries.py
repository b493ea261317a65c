"""Admin report sections and platform stats executed against PostgreSQL."""

from __future__ import annotations

import pytest
import pytest_asyncio

from leaps.analytics.filters import AnalyticsFilters
from leaps.analytics.platform import get_platform_stats
from leaps.analytics.report import ReportOptions, build_report
from leaps.analytics.views import refresh_all
from leaps.submissions.service import create_submission, review_submission

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def seeded(db, add_user):
    """Two educators, one reviewer; four submissions across every status."""
    await add_user("ana", cohort="Batch 1", school="North High")
    await add_user("ben", cohort="Batch 2", school="South High")
    await add_user("rita", role="REVIEWER")

    learn = await create_submission(db, "ana", "LEARN", {"course": "AI 101"})
    amplify = await create_submission(db, "ana", "AMPLIFY", {"peersTrained": 3, "studentsTrained": 12})
    explore = await create_submission(db, "ben", "EXPLORE", {"lesson": "prompting"})
    await create_submission(db, "ben", "PRESENT", {"link": "https://example.org/talk"})

    await review_submission(db, learn.id, "rita", "approve")
    await review_submission(db, amplify.id, "rita", "approve")
    await review_submission(db, explore.id, "rita", "reject")
    await db.commit()


def _by(entries, key):
    return {e[key]: e for e in entries}


class TestReportSections:
    """Every section runs its SQL in both execution modes."""

    @pytest.mark.parametrize("consistent", [True, False])
    async def test_overview(self, session_factory, seeded, consistent):
        report = await build_report(session_factory, AnalyticsFilters(), ReportOptions(consistent=consistent))

        submissions = report["overview"]["submissions"]
        assert submissions == {"total": 4, "pending": 1, "approved": 2, "rejected": 1, "approvalRate": 66.67}
        users = report["overview"]["users"]
        assert users["total"] == 3
        assert users["active"] == 2
        assert users["withApprovedSubmissions"] == 1
        assert users["withBadges"] == 1
        assert report["overview"]["points"]["totalAwarded"] == 38
        assert report["overview"]["points"]["totalEntries"] == 2
        assert report["overview"]["badges"]["totalEarned"] == 2
        assert report["overview"]["reviews"]["pendingReviews"] == 1
        assert report["_meta"]["consistent"] is consistent
        assert report["_meta"]["rejected_rows"] == 0

    @pytest.mark.parametrize("consistent", [True, False])
    async def test_distributions(self, session_factory, seeded, consistent):
        report = await build_report(session_factory, AnalyticsFilters(), ReportOptions(consistent=consistent))
        dist = report["distributions"]

        assert {e["status"]: e["count"] for e in dist["submissionsByStatus"]} == {
            "APPROVED": 2,
            "PENDING": 1,
            "REJECTED": 1,
        }
        assert _by(dist["submissionsByActivity"], "activity")["AMPLIFY"]["activityName"] == "Amplify"
        assert {e["role"]: e["count"] for e in dist["usersByRole"]} == {"PARTICIPANT": 2, "REVIEWER": 1}
        assert {e["cohort"]: e["count"] for e in dist["usersByCohort"]} == {
            "Batch 1": 1,
            "Batch 2": 1,
            "No Cohort": 1,
        }
        assert [(e["activity"], e["totalPoints"]) for e in dist["pointsByActivity"]] == [
            ("LEARN", 20),
            ("AMPLIFY", 18),
        ]
        assert dist["pointsSummary"]["totalUsers"] == 1
        assert dist["pointsSummary"]["max"] == 38
        assert sum(b["count"] for b in dist["pointsDistribution"]) == 1

    async def test_trends_recent_activity_and_performance(self, session_factory, seeded):
        report = await build_report(session_factory, AnalyticsFilters(), ReportOptions())

        assert sum(d["total"] for d in report["trends"]["submissionsByDate"]) == 4
        assert sum(d["count"] for d in report["trends"]["userRegistrationsByDate"]) == 3

        recent = report["recentActivity"]
        assert len(recent["submissions"]) == 4
        assert sorted(a["points_awarded"] for a in recent["approvals"]) == [18, 20]
        assert {a["reviewer_name"] for a in recent["approvals"]} == {"Rita"}

        reviewers = report["performance"]["reviewers"]
        assert len(reviewers) == 1
        assert (reviewers[0]["approved"], reviewers[0]["rejected"], reviewers[0]["total"]) == (2, 1, 3)
        assert {b["code"] for b in report["performance"]["topBadges"]} == {"FIRST_STEPS", "AMPLIFIER"}

    async def test_cohort_filter_scopes_submissions(self, session_factory, seeded):
        report = await build_report(session_factory, AnalyticsFilters.parse(cohort="Batch 2"), ReportOptions())

        assert report["overview"]["submissions"]["total"] == 2
        assert report["overview"]["submissions"]["approvalRate"] == 0
        assert report["overview"]["points"]["totalAwarded"] == 0
        assert report["_meta"]["filters"]["cohort"] == "Batch 2"

    @pytest.mark.parametrize("consistent", [True, False])
    async def test_empty_database_gives_zeroed_report(self, session_factory, consistent):
        report = await build_report(session_factory, AnalyticsFilters(), ReportOptions(consistent=consistent))

        assert report["overview"]["submissions"] == {
            "total": 0,
            "pending": 0,
            "approved": 0,
            "rejected": 0,
            "approvalRate": 0,
        }
        assert report["overview"]["users"]["activationRate"] == 0
        assert report["overview"]["points"] == {"totalAwarded": 0, "totalEntries": 0, "avgPerEntry": 0}
        assert report["distributions"]["submissionsByStatus"] == []
        assert report["distributions"]["pointsByActivity"] == []
        assert report["distributions"]["pointsSummary"]["totalUsers"] == 0
        assert report["trends"] == {"submissionsByDate": [], "userRegistrationsByDate": []}
        assert report["recentActivity"] == {"submissions": [], "approvals": [], "users": []}
        assert report["performance"]["reviewers"] == []


class TestPlatformStats:
    async def test_totals(self, db, seeded):
        stats = await get_platform_stats(db)

        assert stats["totalEducators"] == 2
        assert stats["totalSubmissions"] == 4
        assert stats["totalPoints"] == 38
        assert stats["studentsImpacted"] == 12
        assert stats["byStage"]["learn"] == {"total": 1, "approved": 1, "pending": 0, "rejected": 0}
        assert stats["byStage"]["explore"]["rejected"] == 1
        assert stats["byStage"]["shine"] == {"total": 0, "approved": 0, "pending": 0, "rejected": 0}
        assert stats["badges"]["totalAwarded"] == 2
        assert _by(stats["topCohorts"], "name")["Batch 1"]["avgPoints"] == 38
        assert len(stats["monthlyGrowth"]) == 6
        assert stats["monthlyGrowth"][-1]["new_submissions"] == 4

    async def test_materialized_source_matches_live(self, session_factory, db, seeded):
        assert (await refresh_all(session_factory))["success"] is True
        live = await get_platform_stats(db, source="live")
        materialized = await get_platform_stats(db, source="materialized")
        assert materialized["byStage"] == live["byStage"]

    async def test_empty_database(self, db):
        stats = await get_platform_stats(db)

        assert stats["totalEducators"] == 0
        assert stats["totalSubmissions"] == 0
        assert stats["studentsImpacted"] == 0
        assert stats["topCohorts"] == []
        zero = {"total": 0, "approved": 0, "pending": 0, "rejected": 0}
        assert all(stage == zero for stage in stats["byStage"].values())
