"""Tests for the distribution row mapper and the trend/performance helpers."""

from datetime import date, datetime, timezone

from leaps.analytics.distributions import (
    NO_COHORT,
    DistributionRow,
    classify_row,
    daily_counts,
    daily_submission_stats,
    map_distributions,
    reviewer_performance,
    top_badges,
)


def _row(category, item, count=1, name=None, points=None):
    return {"category": category, "item": item, "item_name": name, "count": count, "points": points}


class TestClassifyRow:
    def test_status_row(self):
        outcome = classify_row(DistributionRow("status", "approved", count=4))
        assert outcome.accepted
        assert outcome.bucket == "submissionsByStatus"
        assert outcome.entry == {"status": "APPROVED", "count": 4}

    def test_unknown_status_rejected(self):
        outcome = classify_row(DistributionRow("status", "ARCHIVED"))
        assert not outcome.accepted
        assert "ARCHIVED" in outcome.reason

    def test_unknown_category_rejected(self):
        outcome = classify_row(DistributionRow("weather", "sunny"))
        assert not outcome.accepted
        assert "weather" in outcome.reason

    def test_null_cohort_becomes_no_cohort(self):
        outcome = classify_row(DistributionRow("cohort", None, count=2))
        assert outcome.entry == {"cohort": NO_COHORT, "count": 2}

    def test_activity_code_any_case(self):
        outcome = classify_row(DistributionRow("activity", "learn", item_name="Learn", count=3))
        assert outcome.entry == {"activity": "LEARN", "activityName": "Learn", "count": 3}

    def test_points_activity_entry(self):
        outcome = classify_row(DistributionRow("points_activity", "AMPLIFY", item_name="Amplify", count=2, points=140))
        assert outcome.bucket == "pointsByActivity"
        assert outcome.entry["totalPoints"] == 140
        assert outcome.entry["entries"] == 2


class TestMapDistributions:
    def test_accepted_equals_rows_minus_rejected(self):
        rows = [
            _row("status", "PENDING", 3),
            _row("status", "UNKNOWN", 1),
            _row("activity", "EXPLORE", 2, "Explore"),
            _row("activity", "DANCE", 2, "Dance"),
            _row("role", "PARTICIPANT", 10),
            _row("role", "GUEST", 1),
            _row("cohort", "Batch 1", 4),
            _row("points_activity", "LEARN", 5, "Learn", 100),
            _row("mystery", "x", 1),
        ]
        result = map_distributions(rows)
        assert result.accepted_count == len(rows) - len(result.rejected)
        assert len(result.rejected) == 4

    def test_all_buckets_present_when_empty(self):
        result = map_distributions([])
        assert set(result.buckets) == {
            "submissionsByStatus",
            "submissionsByActivity",
            "usersByRole",
            "usersByCohort",
            "pointsByActivity",
        }
        assert all(v == [] for v in result.buckets.values())

    def test_keeps_input_order_within_bucket(self):
        result = map_distributions([_row("role", "ADMIN", 1), _row("role", "PARTICIPANT", 9)])
        assert [e["role"] for e in result.buckets["usersByRole"]] == ["ADMIN", "PARTICIPANT"]


class TestDailyStats:
    def test_submission_stats_by_day(self):
        day1 = datetime(2025, 3, 1, 9, tzinfo=timezone.utc)
        day2 = datetime(2025, 3, 2, 18, tzinfo=timezone.utc)
        stats = daily_submission_stats([(day2, "PENDING"), (day1, "APPROVED"), (day1, "REJECTED")])
        assert stats == [
            {"date": "2025-03-01", "total": 2, "approved": 1, "rejected": 1, "pending": 0},
            {"date": "2025-03-02", "total": 1, "approved": 0, "rejected": 0, "pending": 1},
        ]

    def test_daily_counts_accepts_dates(self):
        counts = daily_counts([date(2025, 1, 2), date(2025, 1, 1), date(2025, 1, 2)])
        assert counts == [{"date": "2025-01-01", "count": 1}, {"date": "2025-01-02", "count": 2}]


class TestReviewerPerformance:
    def test_sorted_by_total_and_idle_reviewers_omitted(self):
        reviewers = [
            {"id": "r1", "name": "Asha", "handle": "asha", "role": "REVIEWER"},
            {"id": "r2", "name": "Ben", "handle": "ben", "role": "ADMIN"},
            {"id": "r3", "name": "Idle", "handle": "idle", "role": "REVIEWER"},
        ]
        performance = [
            {"reviewer_id": "r1", "status": "APPROVED", "count": 2},
            {"reviewer_id": "r2", "status": "APPROVED", "count": 3},
            {"reviewer_id": "r2", "status": "REJECTED", "count": 1},
            {"reviewer_id": "ghost", "status": "APPROVED", "count": 9},
        ]
        ranked = reviewer_performance(reviewers, performance)
        assert [r["id"] for r in ranked] == ["r2", "r1"]
        assert ranked[0]["approvalRate"] == 75.0
        assert ranked[1]["total"] == 2


class TestTopBadges:
    def test_unknown_codes_dropped(self):
        catalog = [{"code": "AMPLIFIER", "name": "Amplifier"}]
        counts = [
            {"badge_code": "AMPLIFIER", "count": 4, "unique_earners": 4},
            {"badge_code": "RETIRED", "count": 9, "unique_earners": 9},
        ]
        assert top_badges(counts, catalog) == [
            {"code": "AMPLIFIER", "name": "Amplifier", "earnedCount": 4, "uniqueEarners": 4}
        ]
