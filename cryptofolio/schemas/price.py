"""Pydantic schemas for price endpoints."""

from datetime import date, datetime

from pydantic import BaseModel

from cryptofolio.schemas.common import Amount, Percent


class PriceResponse(BaseModel):
    """Current price of one symbol."""

    symbol: str
    price_usd: Amount
    market_cap: Amount | None = None
    volume_24h: Amount | None = None
    change_24h_pct: Percent | None = None
    last_updated: datetime

    model_config = {"from_attributes": True}


class HistoricalPriceResponse(BaseModel):
    """Price of one symbol on one day."""

    symbol: str
    price_usd: Amount
    price_date: date

    model_config = {"from_attributes": True}
