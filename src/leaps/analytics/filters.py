"""Structured analytics filters compiled into bound SQLAlchemy expressions.

User-supplied values only ever reach the database as bind parameters;
nothing here builds SQL text.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy import ColumnElement, and_, select, true

from leaps.db.models import User
from leaps.domain import ALL_COHORTS
from leaps.errors import InvalidQueryError

MAX_COHORT_LENGTH = 200


def _parse_instant(value: Any, *, end_of_day: bool) -> Any:  # noqa: ANN401
    """Accept ISO-8601 dates or datetimes. Date-only end bounds cover the whole day."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        parsed_date = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if len(text) == 10:
            parsed_date = date.fromisoformat(text)
        else:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    else:
        return value
    if end_of_day:
        return datetime.combine(parsed_date, time.max, tzinfo=timezone.utc)
    return datetime.combine(parsed_date, time.min, tzinfo=timezone.utc)


class AnalyticsFilters(BaseModel):
    """Optional date window and cohort shared by every report section."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    start_date: datetime | None = Field(None, alias="startDate")
    end_date: datetime | None = Field(None, alias="endDate")
    cohort: str | None = Field(None, max_length=MAX_COHORT_LENGTH)

    @field_validator("start_date", mode="before")
    @classmethod
    def _start(cls, v: Any) -> Any:  # noqa: ANN401
        return _parse_instant(v, end_of_day=False)

    @field_validator("end_date", mode="before")
    @classmethod
    def _end(cls, v: Any) -> Any:  # noqa: ANN401
        return _parse_instant(v, end_of_day=True)

    @field_validator("cohort", mode="before")
    @classmethod
    def _cohort(cls, v: Any) -> Any:  # noqa: ANN401
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def _window(self) -> AnalyticsFilters:
        if (self.start_date is None) != (self.end_date is None):
            msg = "startDate and endDate must be provided together"
            raise ValueError(msg)
        if self.start_date is not None and self.end_date is not None and self.start_date > self.end_date:
            msg = "startDate must not be after endDate"
            raise ValueError(msg)
        return self

    @classmethod
    def parse(cls, **params: Any) -> AnalyticsFilters:
        """Build filters from raw query parameters, raising InvalidQueryError on bad input."""
        try:
            return cls.model_validate(params)
        except ValidationError as exc:
            raise InvalidQueryError(
                "Invalid query parameters",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc
        except ValueError as exc:
            raise InvalidQueryError(f"Invalid query parameters: {exc}") from exc

    @property
    def cohort_value(self) -> str | None:
        """Cohort to filter on, or None when unfiltered ("ALL" or empty)."""
        if self.cohort is None or self.cohort.upper() == ALL_COHORTS:
            return None
        return self.cohort

    @property
    def has_window(self) -> bool:
        return self.start_date is not None

    def trend_window(self, default_days: int, now: datetime | None = None) -> tuple[datetime, datetime]:
        """The explicit window, else the trailing `default_days` ending now."""
        if self.start_date is not None and self.end_date is not None:
            return self.start_date, self.end_date
        now = now or datetime.now(timezone.utc)
        return now - timedelta(days=default_days), now

    def describe(self) -> dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "cohort": self.cohort_value or ALL_COHORTS,
        }


def window_condition(column: Any, filters: AnalyticsFilters) -> ColumnElement[bool]:  # noqa: ANN401
    """`column BETWEEN :start AND :end` when a window is set."""
    if filters.start_date is None or filters.end_date is None:
        return true()
    return column.between(filters.start_date, filters.end_date)


def cohort_condition(column: Any, filters: AnalyticsFilters) -> ColumnElement[bool]:  # noqa: ANN401
    """`column = :cohort` unless the cohort is ALL."""
    cohort = filters.cohort_value
    if cohort is None:
        return true()
    return column == cohort


def combined(*conditions: ColumnElement[bool]) -> ColumnElement[bool]:
    return and_(true(), *conditions)


def cohort_members(user_id_column: Any, filters: AnalyticsFilters) -> ColumnElement[bool]:  # noqa: ANN401
    """`user_id IN (SELECT id FROM users WHERE cohort = :cohort)` unless the cohort is ALL."""
    cohort = filters.cohort_value
    if cohort is None:
        return true()
    return user_id_column.in_(select(User.id).where(User.cohort == cohort))
