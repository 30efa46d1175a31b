"""Pydantic schemas for portfolio endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from cryptofolio.schemas.common import Amount, OffsetPagination, Percent


class PortfolioCreate(BaseModel):
    """Request body for creating a portfolio.

    name is validated by the service so that a missing or blank name
    reports INVALID_NAME.
    """

    name: str | None = Field(None, description="1-100 characters")
    description: str | None = Field(None, max_length=500)
    base_currency: str = Field("USD", min_length=3, max_length=3)


class PortfolioUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    name: str | None = None
    description: str | None = Field(None, max_length=500)


class PortfolioResponse(BaseModel):
    """Response schema for portfolio data."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    base_currency: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PortfolioListResponse(BaseModel):
    data: list[PortfolioResponse] = Field(default_factory=list)
    pagination: OffsetPagination


class HoldingResponse(BaseModel):
    """A position valued at the current price."""

    symbol: str
    total_quantity: Amount
    average_cost: Amount = Field(..., description="Weighted average purchase price")
    total_cost: Amount = Field(..., description="Cost basis of the remaining units")
    current_price: Amount
    market_value: Amount
    unrealized_pl: Amount = Field(..., description="market_value - total_cost")
    unrealized_pl_pct: Percent
    price_change_24h_pct: Percent | None = None


class PortfolioSummaryResponse(BaseModel):
    """Totals across all holdings."""

    total_value: Amount
    total_cost: Amount
    unrealized_pl: Amount
    total_pl_pct: Percent
    holdings_count: int
    prices_stale: bool = Field(
        False, description="True if some prices are older than the freshness window or missing"
    )


class PortfolioDetailResponse(BaseModel):
    """Portfolio with valued holdings and summary."""

    portfolio: PortfolioResponse
    holdings: list[HoldingResponse] = Field(default_factory=list)
    summary: PortfolioSummaryResponse
