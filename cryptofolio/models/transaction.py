"""
Transaction model - the event history a portfolio is derived from.

Holdings, valuations and chart snapshots are never stored; they are
replayed from these rows. Rows change only through explicit update/delete,
and every change invalidates the portfolio's cached chart data.
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cryptofolio.clock import utcnow
from cryptofolio.database import Base


class TransactionType(str, enum.Enum):
    """Buy or sell."""

    BUY = "BUY"
    SELL = "SELL"


class Transaction(Base):
    """A single BUY or SELL of a crypto asset."""

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    portfolio_id: Mapped[str] = mapped_column(
        String, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False
    )

    # Uppercase ticker, e.g. "BTC"
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)

    type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(28, 10), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(28, 10), nullable=False)

    # When the trade happened (user supplied, never in the future at creation)
    transaction_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Insertion time; breaks ties between equal transaction_date values
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    portfolio: Mapped["Portfolio"] = relationship(back_populates="transactions")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_transaction_quantity_positive"),
        CheckConstraint("price_per_unit > 0", name="check_transaction_price_positive"),
        Index("ix_transactions_portfolio_date", "portfolio_id", "transaction_date"),
        Index("ix_transactions_portfolio_symbol", "portfolio_id", "symbol"),
    )

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.id!r}, {self.type.value} {self.quantity} {self.symbol} "
            f"@ {self.price_per_unit}, date={self.transaction_date})"
        )


# Import at end to avoid circular imports
from cryptofolio.models.portfolio import Portfolio
