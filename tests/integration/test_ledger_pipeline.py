"""Ledger, submission and leaderboard behaviour against PostgreSQL."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import text

from leaps.analytics.leaderboard import query_leaderboard
from leaps.analytics.stage_metrics import get_stage_metrics
from leaps.analytics.views import refresh_all
from leaps.errors import ConflictError
from leaps.gamification.badge_service import get_earned_badge_codes
from leaps.ledger.service import append_entry, get_balance, get_balance_by_activity
from leaps.submissions.service import create_submission, review_submission

pytestmark = pytest.mark.asyncio


class TestLedger:
    """Balances are sums over append-only rows."""

    async def test_balance_is_sum_of_deltas(self, db, add_user):
        await add_user("ana")
        await append_entry(db, "ana", "LEARN", 20, "FORM")
        await append_entry(db, "ana", "EXPLORE", 50, "FORM")
        await append_entry(db, "ana", "LEARN", -5, "MANUAL")
        await db.commit()

        assert await get_balance(db, "ana") == 65
        by_activity = await get_balance_by_activity(db, "ana")
        assert by_activity["LEARN"] == 15
        assert by_activity["EXPLORE"] == 50
        assert by_activity["SHINE"] == 0

    async def test_external_event_recorded_once(self, db, add_user):
        await add_user("ben")
        event = {"external_event_id": "evt-1", "external_source": "kajabi"}
        first = await append_entry(db, "ben", "AMPLIFY", 12, "WEBHOOK", **event)
        second = await append_entry(db, "ben", "AMPLIFY", 12, "WEBHOOK", **event)
        await db.commit()

        assert first is True
        assert second is False
        assert await get_balance(db, "ben") == 12

    async def test_unknown_user_balance_is_zero(self, db):
        assert await get_balance(db, "nobody") == 0


class TestSubmissions:
    """Payload storage and the review flow."""

    async def test_payload_text_preserved(self, db, add_user):
        await add_user("cai")
        payload = {"zeta": 1, "alpha": [3, 1, 2], "nested": {"b": "x", "a": None}}
        submission = await create_submission(db, "cai", "LEARN", payload)
        await db.commit()

        stored = (
            await db.execute(text("SELECT payload::text FROM submissions WHERE id = :id"), {"id": submission.id})
        ).scalar_one()
        assert stored == json.dumps(payload)

    async def test_approve_credits_points_and_badge(self, db, add_user):
        await add_user("dev")
        await add_user("rita", role="REVIEWER")
        submission = await create_submission(db, "dev", "EXPLORE", {"lesson": "prompting"})
        await db.commit()

        result = await review_submission(db, submission.id, "rita", "approve")
        await db.commit()

        assert result["points_awarded"] == 50
        assert "IN_CLASS_INNOVATOR" in result["badges_granted"]
        assert await get_balance(db, "dev") == 50
        assert "IN_CLASS_INNOVATOR" in await get_earned_badge_codes(db, "dev")

        with pytest.raises(ConflictError):
            await review_submission(db, submission.id, "rita", "reject")

    async def test_reject_writes_no_points(self, db, add_user):
        await add_user("eve")
        await add_user("rita", role="REVIEWER")
        submission = await create_submission(db, "eve", "PRESENT", {"link": "https://example.org/talk"})
        result = await review_submission(db, submission.id, "rita", "reject", note="Link is private")
        await db.commit()

        assert result["submission"].status == "REJECTED"
        assert result["points_awarded"] == 0
        assert await get_balance(db, "eve") == 0


class TestLeaderboard:
    """Only educator participants with points are ranked."""

    async def _seed(self, db, add_user):
        await add_user("top", cohort="Batch 1")
        await add_user("second", cohort="Batch 2")
        await add_user("pupil", user_type="STUDENT")
        await add_user("staff", role="REVIEWER")
        await add_user("idle")
        await append_entry(db, "top", "EXPLORE", 150, "MANUAL")
        await append_entry(db, "second", "LEARN", 90, "MANUAL")
        await append_entry(db, "pupil", "LEARN", 200, "MANUAL")
        await append_entry(db, "staff", "LEARN", 300, "MANUAL")
        await db.commit()

    async def test_live_ranking(self, db, add_user):
        await self._seed(db, add_user)
        page = await query_leaderboard(db, source="live")

        assert [e["total_points"] for e in page["entries"]] == [150, 90]
        assert [e["rank"] for e in page["entries"]] == [1, 2]
        assert page["total"] == 2
        assert page["has_more"] is False

    async def test_cohort_filter(self, db, add_user):
        await self._seed(db, add_user)
        page = await query_leaderboard(db, cohort="Batch 2", source="live")
        assert [e["user_id"] for e in page["entries"]] == ["second"]

    async def test_materialized_matches_live(self, session_factory, db, add_user):
        await self._seed(db, add_user)
        summary = await refresh_all(session_factory)
        assert summary["success"] is True

        live = await query_leaderboard(db, source="live")
        materialized = await query_leaderboard(db, source="materialized")
        assert [e["user_id"] for e in materialized["entries"]] == [e["user_id"] for e in live["entries"]]
        assert [e["total_points"] for e in materialized["entries"]] == [150, 90]


class TestStageMetrics:
    async def test_empty_stage_is_zeroed(self, db):
        metrics = await get_stage_metrics(db, "shine")

        assert metrics["stage"] == "SHINE"
        assert metrics["totalSubmissions"] == 0
        assert metrics["approvedSubmissions"] == 0
        assert metrics["avgPointsEarned"] == 0
        assert metrics["completionRate"] == 0
        assert metrics["topSchools"] == []
