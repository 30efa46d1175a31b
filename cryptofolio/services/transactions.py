"""Transaction service - CRUD for a portfolio's transaction history.

Every mutation invalidates the portfolio's chart cache after the database
commit. The chart cache refuses to store a series whose computation was
still running when the invalidation arrived.
"""

import logging
import re
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio import telemetry
from cryptofolio.clock import utcnow
from cryptofolio.errors import BadRequest
from cryptofolio.models import Transaction, TransactionType
from cryptofolio.services.chart_cache import ChartCache

logger = logging.getLogger(__name__)

MAX_SYMBOL_LENGTH = 20
MAX_NOTES_LENGTH = 500
MAX_PAGE_SIZE = 100

TAG_RE = re.compile(r"<[^>]*>")
SYMBOL_RE = re.compile(r"[^A-Za-z0-9]")

UPDATABLE_FIELDS = ("quantity", "price_per_unit", "transaction_date", "notes")


class TransactionNotFound(LookupError):
    """No such transaction in the portfolio."""


# ----------------------------------------------------------------------------
# Input cleaning
# ----------------------------------------------------------------------------


def sanitize_symbol(symbol: str | None) -> str:
    """Uppercase alphanumeric ticker, at most 20 characters."""
    return SYMBOL_RE.sub("", symbol or "").upper()[:MAX_SYMBOL_LENGTH]


def sanitize_notes(notes: str | None) -> str | None:
    """Strip HTML tags and surrounding whitespace; blank becomes None."""
    if notes is None:
        return None
    cleaned = TAG_RE.sub("", notes).strip()
    return cleaned[:MAX_NOTES_LENGTH] or None


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are taken as UTC."""
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def _parse_type(value) -> TransactionType:
    try:
        return TransactionType(str(getattr(value, "value", value)).upper())
    except ValueError:
        raise BadRequest("Type must be BUY or SELL", code="INVALID_TYPE")


def _check_quantity(quantity: Decimal) -> Decimal:
    if not quantity.is_finite() or quantity <= 0:
        raise BadRequest("Quantity must be greater than 0", code="INVALID_QUANTITY")
    return quantity


def _check_price(price: Decimal) -> Decimal:
    if not price.is_finite() or price <= 0:
        raise BadRequest("Price must be greater than 0", code="INVALID_PRICE")
    return price


def _check_date(value: datetime) -> datetime:
    value = to_naive_utc(value)
    if value > utcnow():
        raise BadRequest("Transaction date cannot be in the future", code="FUTURE_DATE")
    return value


# ----------------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------------


async def get_portfolio_transactions(session: AsyncSession, portfolio_id: str) -> list[Transaction]:
    """All transactions of a portfolio, oldest first."""
    result = await session.execute(
        select(Transaction)
        .where(Transaction.portfolio_id == portfolio_id)
        .order_by(Transaction.transaction_date, Transaction.created_at)
    )
    return list(result.scalars().all())


async def list_transactions(
    session: AsyncSession,
    portfolio_id: str,
    page: int = 1,
    limit: int = MAX_PAGE_SIZE,
    symbol: str | None = None,
    type: str | None = None,
) -> tuple[list[Transaction], int]:
    """List transactions newest first, with optional symbol/type filters.

    Returns:
        (page of transactions, total matching count)
    """
    conditions = [Transaction.portfolio_id == portfolio_id]
    if symbol:
        conditions.append(Transaction.symbol == sanitize_symbol(symbol))
    if type and type.upper() in TransactionType.__members__:
        conditions.append(Transaction.type == TransactionType(type.upper()))

    total = await session.scalar(select(func.count()).select_from(Transaction).where(*conditions))

    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = (max(page, 1) - 1) * limit
    result = await session.execute(
        select(Transaction)
        .where(*conditions)
        .order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def get_transaction(session: AsyncSession, portfolio_id: str, transaction_id: str) -> Transaction:
    """Load one transaction of a portfolio.

    Raises:
        TransactionNotFound: If it does not exist in that portfolio
    """
    txn = await session.get(Transaction, transaction_id)
    if txn is None or txn.portfolio_id != portfolio_id:
        raise TransactionNotFound(transaction_id)
    return txn


# ----------------------------------------------------------------------------
# Mutations
# ----------------------------------------------------------------------------


async def create_transaction(
    session: AsyncSession,
    portfolio_id: str,
    symbol: str | None,
    type: str | None,
    quantity: Decimal | None,
    price_per_unit: Decimal | None,
    transaction_date: datetime | None,
    notes: str | None = None,
    chart_cache: ChartCache | None = None,
) -> Transaction:
    """Record a BUY or SELL.

    Selling more than is held is allowed; the position simply goes negative.

    Raises:
        BadRequest: MISSING_FIELDS, INVALID_TYPE, INVALID_SYMBOL,
            INVALID_QUANTITY, INVALID_PRICE or FUTURE_DATE
    """
    if not symbol or not type or quantity is None or price_per_unit is None or transaction_date is None:
        raise BadRequest(
            "symbol, type, quantity, price_per_unit and transaction_date are required",
            code="MISSING_FIELDS",
        )

    txn_type = _parse_type(type)
    clean_symbol = sanitize_symbol(symbol)
    if not clean_symbol:
        raise BadRequest("Symbol must contain letters or digits", code="INVALID_SYMBOL")

    txn = Transaction(
        id=str(uuid.uuid4()),
        portfolio_id=portfolio_id,
        symbol=clean_symbol,
        type=txn_type,
        quantity=_check_quantity(Decimal(quantity)),
        price_per_unit=_check_price(Decimal(price_per_unit)),
        transaction_date=_check_date(transaction_date),
        notes=sanitize_notes(notes),
    )
    session.add(txn)
    await session.commit()
    await session.refresh(txn)

    if chart_cache is not None:
        chart_cache.invalidate_portfolio(portfolio_id)
    telemetry.record_transaction_mutation("create")
    logger.info(
        f"Created {txn.type.value} {txn.quantity} {txn.symbol} in portfolio {portfolio_id}"
    )
    return txn


async def update_transaction(
    session: AsyncSession,
    txn: Transaction,
    changes: dict,
    chart_cache: ChartCache | None = None,
) -> Transaction:
    """Apply a partial update.

    Args:
        changes: Subset of quantity, price_per_unit, transaction_date, notes

    Raises:
        BadRequest: MISSING_FIELDS, INVALID_QUANTITY, INVALID_PRICE or FUTURE_DATE
    """
    changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
    # The date cannot be cleared, so a null date counts as not given
    if "transaction_date" in changes and changes["transaction_date"] is None:
        del changes["transaction_date"]
    if not changes:
        raise BadRequest(
            "Provide at least one of quantity, price_per_unit, transaction_date or notes",
            code="MISSING_FIELDS",
        )

    if "quantity" in changes:
        if changes["quantity"] is None:
            raise BadRequest("Quantity must be greater than 0", code="INVALID_QUANTITY")
        txn.quantity = _check_quantity(Decimal(changes["quantity"]))
    if "price_per_unit" in changes:
        if changes["price_per_unit"] is None:
            raise BadRequest("Price must be greater than 0", code="INVALID_PRICE")
        txn.price_per_unit = _check_price(Decimal(changes["price_per_unit"]))
    if "transaction_date" in changes:
        txn.transaction_date = _check_date(changes["transaction_date"])
    if "notes" in changes:
        txn.notes = sanitize_notes(changes["notes"])

    await session.commit()
    await session.refresh(txn)

    if chart_cache is not None:
        chart_cache.invalidate_portfolio(txn.portfolio_id)
    telemetry.record_transaction_mutation("update")
    return txn


async def delete_transaction(
    session: AsyncSession,
    txn: Transaction,
    chart_cache: ChartCache | None = None,
) -> None:
    """Delete one transaction."""
    portfolio_id = txn.portfolio_id
    await session.execute(delete(Transaction).where(Transaction.id == txn.id))
    await session.commit()

    if chart_cache is not None:
        chart_cache.invalidate_portfolio(portfolio_id)
    telemetry.record_transaction_mutation("delete")


async def delete_symbol_transactions(
    session: AsyncSession,
    portfolio_id: str,
    symbol: str,
    chart_cache: ChartCache | None = None,
) -> int:
    """Delete every transaction of one symbol in a portfolio.

    Returns:
        Number of transactions deleted

    Raises:
        BadRequest: INVALID_SYMBOL
    """
    clean_symbol = sanitize_symbol(symbol)
    if not clean_symbol:
        raise BadRequest("Symbol is required", code="INVALID_SYMBOL")

    result = await session.execute(
        delete(Transaction).where(
            Transaction.portfolio_id == portfolio_id,
            Transaction.symbol == clean_symbol,
        )
    )
    await session.commit()
    deleted = result.rowcount or 0

    if chart_cache is not None:
        chart_cache.invalidate_portfolio(portfolio_id)
    telemetry.record_transaction_mutation("delete", deleted)
    logger.info(f"Deleted {deleted} {clean_symbol} transaction(s) from portfolio {portfolio_id}")
    return deleted
