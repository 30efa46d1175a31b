"""Holdings aggregation - replays transaction history into positions.

Cost basis uses a running weighted average: BUYs blend their price into the
average, SELLs reduce quantity (and total cost proportionally) but leave the
average cost of the remaining units unchanged.

Everything in this module is pure: no I/O, no clock reads.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Protocol

ZERO = Decimal("0")


class TransactionLike(Protocol):
    """Anything that looks like a transaction row."""

    symbol: str
    type: object  # TransactionType or "BUY"/"SELL"
    quantity: Decimal
    price_per_unit: Decimal
    transaction_date: datetime


@dataclass(frozen=True)
class Position:
    """Current position in one symbol."""

    symbol: str
    quantity: Decimal
    average_cost: Decimal
    total_cost: Decimal

    @property
    def is_open(self) -> bool:
        """Whether the position holds a positive quantity."""
        return self.quantity > 0


def _type_value(txn) -> str:
    return getattr(txn.type, "value", txn.type)


def sort_transactions(transactions: Iterable[TransactionLike]) -> list:
    """Order transactions chronologically.

    Sorted by transaction_date, then created_at (insertion time) when the
    rows carry one. Python's sort is stable, so complete ties keep input order.
    """
    def key(txn):
        created_at = getattr(txn, "created_at", None)
        return (txn.transaction_date, created_at or datetime.min)

    return sorted(transactions, key=key)


def compute_holdings(transactions: Iterable[TransactionLike]) -> dict[str, Position]:
    """Compute per-symbol positions from a portfolio's transactions.

    Args:
        transactions: Transactions in any order, any number of symbols

    Returns:
        Mapping of symbol to Position. Symbols whose quantity dropped to zero
        or below are included; their average_cost is 0.
    """
    by_symbol: dict[str, list] = {}
    for txn in transactions:
        by_symbol.setdefault(txn.symbol, []).append(txn)

    positions = {}
    for symbol, symbol_txns in by_symbol.items():
        quantity = ZERO
        total_cost = ZERO
        average_cost = ZERO

        for txn in sort_transactions(symbol_txns):
            qty = Decimal(txn.quantity)
            if _type_value(txn) == "BUY":
                price = Decimal(txn.price_per_unit)
                if quantity >= 0:
                    total_cost += qty * price
                else:
                    # Oversold position: only units above zero carry cost
                    total_cost = max(quantity + qty, ZERO) * price
                quantity += qty
                average_cost = total_cost / quantity if quantity > 0 else ZERO
            else:
                # Average cost of the remaining units is unchanged
                total_cost -= qty * average_cost
                quantity -= qty
                if quantity <= 0:
                    total_cost = ZERO

        if quantity <= 0:
            average_cost = ZERO
            total_cost = ZERO

        positions[symbol] = Position(
            symbol=symbol,
            quantity=quantity,
            average_cost=average_cost,
            total_cost=total_cost,
        )

    return positions


def open_positions(positions: dict[str, Position]) -> list[Position]:
    """Positions with a positive quantity, sorted by symbol."""
    return sorted(
        (p for p in positions.values() if p.is_open),
        key=lambda p: p.symbol,
    )
