"""
SQLAlchemy models for the portfolio tracker.

This module exports all models and the Base class for easy imports:
    from cryptofolio.models import Base, User, Portfolio, Transaction, PriceCacheEntry
"""

from cryptofolio.database import Base
from cryptofolio.models.user import AuthSession, User
from cryptofolio.models.portfolio import Portfolio
from cryptofolio.models.transaction import Transaction, TransactionType
from cryptofolio.models.price import PriceCacheEntry

__all__ = [
    "Base",
    "User",
    "AuthSession",
    "Portfolio",
    "Transaction",
    "TransactionType",
    "PriceCacheEntry",
]
