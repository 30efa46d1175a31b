"""Pydantic schemas for chart endpoints."""

from datetime import date

from pydantic import BaseModel, Field

from cryptofolio.schemas.common import Amount, Percent


class SnapshotResponse(BaseModel):
    """Portfolio valuation at the end of one day."""

    snapshot_date: date
    total_value: Amount
    total_cost: Amount
    total_pl: Amount
    total_pl_pct: Percent
    holdings_count: int

    model_config = {"from_attributes": True}


class ChartResponse(BaseModel):
    """Daily snapshots for an interval, newest first."""

    interval: str = Field(..., description="24h, 7d, 30d, 90d or all")
    snapshots: list[SnapshotResponse] = Field(default_factory=list)
    current_value: Amount
    start_value: Amount
    change_abs: Amount
    change_pct: Percent
    cached_at: str | None = Field(None, description="When this series was computed")
