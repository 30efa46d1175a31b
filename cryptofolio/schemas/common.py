"""Shared schema pieces: the response envelope and number formatting."""

from decimal import Decimal
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, Field, PlainSerializer

T = TypeVar("T")

CENT = Decimal("0.01")


def plain_decimal(value: Decimal) -> str:
    """Render a decimal without exponent or trailing zeros ("40000", "0.5")."""
    return format(value.normalize(), "f")


def percent_decimal(value: Decimal) -> str:
    """Render a percentage with two decimal places."""
    rounded = value.quantize(CENT)
    if rounded == 0:
        return "0.00"
    return format(rounded, "f")


# Money and quantities keep full precision; percentages are rounded
Amount = Annotated[Decimal, PlainSerializer(plain_decimal, return_type=str, when_used="json")]
Percent = Annotated[Decimal, PlainSerializer(percent_decimal, return_type=str, when_used="json")]


class DataResponse(BaseModel, Generic[T]):
    """Success envelope: {"data": ...}."""

    data: T


class OffsetPagination(BaseModel):
    """Pagination meta for limit/offset listings."""

    limit: int
    offset: int
    total: int
    has_next: bool


class PagePagination(BaseModel):
    """Pagination meta for page/limit listings."""

    page: int
    limit: int
    total: int
    has_next: bool


class ErrorDetail(BaseModel):
    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable message")
    details: dict | None = None


class ErrorResponse(BaseModel):
    """Error envelope: {"error": {"code", "message", "details"?}}."""

    error: ErrorDetail
