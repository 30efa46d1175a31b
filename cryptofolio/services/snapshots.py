"""Snapshot engine - daily portfolio valuations over a date range.

For each calendar day the transaction history up to and including that day
is replayed into holdings, which are then valued at that day's cached price.
A missing price values the holding at 0 for that day; it is not an error.

Pure: deterministic for identical inputs, no I/O, no clock reads.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from cryptofolio.services.holdings import ZERO, Position, compute_holdings, sort_transactions

HUNDRED = Decimal("100")

# (symbol, day) -> USD price
PriceHistory = dict[tuple[str, date], Decimal]


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Valuation of a portfolio at the end of one calendar day."""

    snapshot_date: date
    total_value: Decimal
    total_cost: Decimal
    total_pl: Decimal
    total_pl_pct: Decimal
    holdings_count: int


@dataclass(frozen=True)
class SeriesSummary:
    """Change between the first and last snapshot of a series."""

    start_value: Decimal
    current_value: Decimal
    change_abs: Decimal
    change_pct: Decimal


def percent(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return ZERO
    return part / whole * HUNDRED


def date_range(start_date: date, end_date: date) -> list[date]:
    """Every calendar day from start_date to end_date inclusive."""
    days = (end_date - start_date).days
    return [start_date + timedelta(days=i) for i in range(days + 1)]


def value_positions(
    positions: Iterable[Position],
    day: date,
    price_history: PriceHistory,
) -> PortfolioSnapshot:
    """Value a set of positions at one day's prices."""
    total_value = ZERO
    total_cost = ZERO
    holdings_count = 0

    for position in positions:
        if not position.is_open:
            continue
        price = price_history.get((position.symbol, day), ZERO)
        total_value += position.quantity * price
        total_cost += position.quantity * position.average_cost
        holdings_count += 1

    total_pl = total_value - total_cost
    return PortfolioSnapshot(
        snapshot_date=day,
        total_value=total_value,
        total_cost=total_cost,
        total_pl=total_pl,
        total_pl_pct=percent(total_pl, total_cost),
        holdings_count=holdings_count,
    )


def compute_snapshots(
    transactions: Iterable,
    price_history: PriceHistory,
    start_date: date,
    end_date: date,
    descending: bool = False,
) -> list[PortfolioSnapshot]:
    """Compute one snapshot per day in [start_date, end_date].

    Args:
        transactions: All transactions of the portfolio
        price_history: Prices keyed by (symbol, day); absent keys value at 0
        start_date: First day (inclusive)
        end_date: Last day (inclusive)
        descending: Return newest first instead of oldest first

    Returns:
        Snapshots ordered by date; empty if start_date > end_date
    """
    if start_date > end_date:
        return []

    ordered = sort_transactions(transactions)
    snapshots = []
    included = 0

    for day in date_range(start_date, end_date):
        # Transactions are date-ordered, so each day only extends the prefix
        while included < len(ordered) and ordered[included].transaction_date.date() <= day:
            included += 1
        positions = compute_holdings(ordered[:included])
        snapshots.append(value_positions(positions.values(), day, price_history))

    if descending:
        snapshots.reverse()
    return snapshots


def summarize_series(snapshots: list[PortfolioSnapshot]) -> SeriesSummary:
    """Summarize the change across a series, in either order."""
    if not snapshots:
        return SeriesSummary(ZERO, ZERO, ZERO, ZERO)

    first, last = snapshots[0], snapshots[-1]
    if first.snapshot_date > last.snapshot_date:
        first, last = last, first

    change_abs = last.total_value - first.total_value
    return SeriesSummary(
        start_value=first.total_value,
        current_value=last.total_value,
        change_abs=change_abs,
        change_pct=percent(change_abs, first.total_value),
    )
