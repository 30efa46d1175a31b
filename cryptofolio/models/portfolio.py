"""
Portfolio model - a named collection of transactions owned by one user.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cryptofolio.clock import utcnow
from cryptofolio.database import Base


class Portfolio(Base):
    """A user's portfolio."""

    __tablename__ = "portfolios"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="portfolios")
    transactions: Mapped[list["Transaction"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="check_portfolio_name_not_empty"),
    )

    def __repr__(self) -> str:
        return f"Portfolio(id={self.id!r}, name={self.name!r}, user_id={self.user_id!r})"


# Import at end to avoid circular imports
from cryptofolio.models.transaction import Transaction
from cryptofolio.models.user import User
