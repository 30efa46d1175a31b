"""
Price cache model.

One row per (symbol, price_date). Today's row holds the "current" price and
is refreshed in place; rows for past dates are historical and permanent.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from cryptofolio.clock import utcnow
from cryptofolio.database import Base


class PriceCacheEntry(Base):
    """A cached USD price for a symbol on a date."""

    __tablename__ = "price_cache"

    # Composite primary key: symbol + date
    symbol: Mapped[str] = mapped_column(String(20), primary_key=True)
    price_date: Mapped[date] = mapped_column(Date, primary_key=True)

    price_usd: Mapped[Decimal] = mapped_column(Numeric(28, 10), nullable=False)
    market_cap: Mapped[Decimal | None] = mapped_column(Numeric(30, 2), nullable=True)
    volume_24h: Mapped[Decimal | None] = mapped_column(Numeric(30, 2), nullable=True)
    change_24h_pct: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)

    # Freshness of current prices is judged from this column
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"PriceCacheEntry(symbol={self.symbol!r}, date={self.price_date}, "
            f"price_usd={self.price_usd}, last_updated={self.last_updated})"
        )
