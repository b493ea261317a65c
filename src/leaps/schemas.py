"""Response envelopes shared by every router."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Success envelope: {"data": ...}."""

    data: T


class ErrorResponse(BaseModel):
    """Error envelope: {"error": ..., "code": ...}."""

    error: str
    code: str
    details: Any = None
