"""
User and session models.

Users authenticate with email + password and receive an opaque session
token. Only the SHA-256 hash of the token is stored.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cryptofolio.clock import utcnow
from cryptofolio.database import Base


class User(Base):
    """A registered user."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    # Stored lowercased; unique across users
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)

    # argon2id encoded hash, "$argon2id$v=19$m=...,t=...,p=...$<salt>$<hash>"
    password_hash: Mapped[str] = mapped_column(String, nullable=False)

    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    email_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    portfolios: Mapped[list["Portfolio"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    sessions: Mapped[list["AuthSession"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, email={self.email!r})"


class AuthSession(Base):
    """A login session, identified by the hash of its bearer token."""

    __tablename__ = "auth_sessions"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    user: Mapped["User"] = relationship(back_populates="sessions")

    def __repr__(self) -> str:
        return f"AuthSession(user_id={self.user_id!r}, expires_at={self.expires_at})"


# Import at end to avoid circular imports
from cryptofolio.models.portfolio import Portfolio
