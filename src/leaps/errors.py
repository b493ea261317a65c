"""Domain exceptions mapped to the JSON error envelope in leaps.middleware.error_handler."""

from __future__ import annotations

from typing import Any


class AnalyticsError(Exception):
    """Base class for errors raised by the analytics and ledger services."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: Any = None) -> None:  # noqa: ANN401
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidQueryError(AnalyticsError):
    """Query parameters or request body failed validation."""

    status_code = 400
    code = "VALIDATION_ERROR"


class DataShapeError(AnalyticsError):
    """Aggregation produced rows the mappers cannot interpret (strict mode)."""

    status_code = 500
    code = "DATA_SHAPE_ERROR"


class NotFoundError(AnalyticsError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AnalyticsError):
    """The resource is not in a state that allows the operation."""

    status_code = 409
    code = "CONFLICT"


class ForbiddenError(AnalyticsError):
    status_code = 403
    code = "FORBIDDEN"


class SectionTimeoutError(AnalyticsError):
    """A report section did not finish within its time budget."""

    status_code = 504
    code = "TIMEOUT"
