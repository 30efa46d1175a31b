"""Pydantic schemas for transaction endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field

from cryptofolio.models import TransactionType
from cryptofolio.schemas.common import Amount, PagePagination


class TransactionCreate(BaseModel):
    """Request body for recording a transaction.

    Also accepts the older field names side, price and executed_at.
    Required fields are checked by the service so that a missing one
    reports MISSING_FIELDS.
    """

    symbol: str | None = Field(None, description="Ticker, e.g. BTC")
    type: str | None = Field(
        None,
        validation_alias=AliasChoices("type", "side"),
        description="BUY or SELL",
    )
    quantity: Decimal | None = None
    price_per_unit: Decimal | None = Field(
        None, validation_alias=AliasChoices("price_per_unit", "price")
    )
    transaction_date: datetime | None = Field(
        None,
        validation_alias=AliasChoices("transaction_date", "executed_at"),
        description="When the trade happened; not in the future",
    )
    notes: str | None = Field(None, max_length=500)


class TransactionUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    quantity: Decimal | None = None
    price_per_unit: Decimal | None = None
    transaction_date: datetime | None = None
    notes: str | None = Field(None, max_length=500)


class TransactionResponse(BaseModel):
    """Response schema for a transaction."""

    id: str
    portfolio_id: str
    symbol: str
    type: TransactionType
    quantity: Amount
    price_per_unit: Amount
    transaction_date: datetime
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    data: list[TransactionResponse] = Field(default_factory=list)
    pagination: PagePagination


class BulkDeleteResponse(BaseModel):
    symbol: str
    deleted: int
