"""Tests for analytics filter parsing and SQL condition building."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from leaps.analytics.filters import (
    AnalyticsFilters,
    cohort_condition,
    cohort_members,
    combined,
    window_condition,
)
from leaps.db.models import Submission, User
from leaps.errors import InvalidQueryError


def _compile(condition):
    return select(Submission.id).where(condition).compile(dialect=postgresql.dialect())


class TestParse:
    def test_empty_filters(self):
        f = AnalyticsFilters.parse()
        assert f.start_date is None
        assert f.cohort_value is None
        assert not f.has_window

    def test_date_only_end_covers_whole_day(self):
        f = AnalyticsFilters.parse(startDate="2025-01-01", endDate="2025-01-31")
        assert f.start_date == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert f.end_date.date().isoformat() == "2025-01-31"
        assert f.end_date.hour == 23

    def test_datetime_with_z_suffix(self):
        f = AnalyticsFilters.parse(startDate="2025-01-01T10:00:00Z", endDate="2025-01-02T10:00:00Z")
        assert f.start_date.tzinfo is not None

    def test_only_one_bound_rejected(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsFilters.parse(startDate="2025-01-01")

    def test_start_after_end_rejected(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsFilters.parse(startDate="2025-02-01", endDate="2025-01-01")

    def test_garbage_date_rejected(self):
        with pytest.raises(InvalidQueryError) as exc_info:
            AnalyticsFilters.parse(startDate="yesterday", endDate="2025-01-01")
        assert exc_info.value.details

    def test_cohort_too_long_rejected(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsFilters.parse(cohort="x" * 201)

    @pytest.mark.parametrize("cohort", ["ALL", "all", "", "   "])
    def test_all_cohort_means_unfiltered(self, cohort):
        assert AnalyticsFilters.parse(cohort=cohort).cohort_value is None

    def test_describe(self):
        f = AnalyticsFilters.parse(cohort="Batch 7")
        assert f.describe() == {"startDate": None, "endDate": None, "cohort": "Batch 7"}


class TestTrendWindow:
    def test_default_trailing_days(self):
        now = datetime(2025, 6, 30, tzinfo=timezone.utc)
        start, end = AnalyticsFilters().trend_window(30, now)
        assert end == now
        assert (end - start).days == 30

    def test_explicit_window_wins(self):
        f = AnalyticsFilters.parse(startDate="2025-01-01", endDate="2025-01-05")
        assert f.trend_window(30) == (f.start_date, f.end_date)


class TestConditions:
    def test_no_filters_compile_to_true(self):
        f = AnalyticsFilters()
        compiled = _compile(combined(window_condition(Submission.created_at, f), cohort_members(Submission.user_id, f)))
        assert compiled.params == {}

    def test_user_values_are_bound_not_inlined(self):
        hostile = "x'); DROP TABLE users; --"
        f = AnalyticsFilters.parse(startDate="2025-01-01", endDate="2025-01-31", cohort=hostile)
        compiled = _compile(
            combined(window_condition(Submission.created_at, f), cohort_members(Submission.user_id, f))
        )
        sql = str(compiled)
        assert "DROP TABLE" not in sql
        assert hostile in compiled.params.values()
        assert f.start_date in compiled.params.values()

    def test_cohort_condition(self):
        f = AnalyticsFilters.parse(cohort="Batch 2")
        compiled = select(User.id).where(cohort_condition(User.cohort, f)).compile(dialect=postgresql.dialect())
        assert "Batch 2" not in str(compiled)
        assert list(compiled.params.values()) == ["Batch 2"]
