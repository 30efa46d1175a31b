"""Tests for the holdings aggregator.

Covers quantity bookkeeping, weighted average cost and the rule that sells
never change the average cost of what remains.
"""

import itertools
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import pytest

from cryptofolio.models import TransactionType
from cryptofolio.services.holdings import compute_holdings, open_positions, sort_transactions


@dataclass
class Txn:
    symbol: str
    type: str
    quantity: Decimal
    price_per_unit: Decimal
    transaction_date: datetime
    created_at: datetime | None = None


def txn(symbol, type, quantity, price, day=1, hour=0, created_minute=None):
    return Txn(
        symbol=symbol,
        type=type,
        quantity=Decimal(quantity),
        price_per_unit=Decimal(price),
        transaction_date=datetime(2024, 1, day, hour),
        created_at=datetime(2024, 2, 1, 0, created_minute) if created_minute is not None else None,
    )


class TestQuantity:
    """Quantity is buys minus sells, per symbol."""

    def test_empty(self):
        assert compute_holdings([]) == {}

    def test_buys_minus_sells(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "1.5", "40000", day=1),
            txn("BTC", "BUY", "0.5", "42000", day=2),
            txn("BTC", "SELL", "0.75", "45000", day=3),
        ])
        assert positions["BTC"].quantity == Decimal("1.25")

    def test_symbols_are_independent(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "1", "40000", day=1),
            txn("ETH", "BUY", "10", "2000", day=1),
            txn("ETH", "SELL", "4", "2500", day=2),
        ])
        assert positions["BTC"].quantity == Decimal("1")
        assert positions["ETH"].quantity == Decimal("6")
        assert positions["ETH"].average_cost == Decimal("2000")

    def test_independent_of_input_order(self):
        """Any permutation of the input gives the same positions."""
        history = [
            txn("BTC", "BUY", "2", "40000", day=1),
            txn("BTC", "SELL", "1", "50000", day=3),
            txn("BTC", "BUY", "1", "46000", day=2),
            txn("ETH", "BUY", "5", "2000", day=2),
        ]
        expected = compute_holdings(history)
        for permutation in itertools.permutations(history):
            assert compute_holdings(list(permutation)) == expected

    def test_accepts_enum_types(self):
        positions = compute_holdings([
            Txn("SOL", TransactionType.BUY, Decimal("10"), Decimal("100"), datetime(2024, 1, 1)),
            Txn("SOL", TransactionType.SELL, Decimal("3"), Decimal("120"), datetime(2024, 1, 2)),
        ])
        assert positions["SOL"].quantity == Decimal("7")


class TestAverageCost:
    """Weighted average cost basis."""

    def test_weighted_mean_of_buys(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "1", "40000", day=1),
            txn("BTC", "BUY", "1", "50000", day=2),
        ])
        assert positions["BTC"].quantity == Decimal("2")
        assert positions["BTC"].average_cost == Decimal("45000")
        assert positions["BTC"].total_cost == Decimal("90000")

    def test_weighted_by_quantity(self):
        positions = compute_holdings([
            txn("ETH", "BUY", "3", "1000", day=1),
            txn("ETH", "BUY", "1", "3000", day=2),
        ])
        assert positions["ETH"].average_cost == Decimal("1500")

    def test_sell_keeps_average_cost(self):
        """BUY 2 @ 40000 then SELL 1 @ 50000 leaves 1 unit at 40000."""
        positions = compute_holdings([
            txn("BTC", "BUY", "2", "40000", day=1),
            txn("BTC", "SELL", "1", "50000", day=2),
        ])
        assert positions["BTC"].quantity == Decimal("1")
        assert positions["BTC"].average_cost == Decimal("40000")
        assert positions["BTC"].total_cost == Decimal("40000")

    def test_sell_after_two_buys_keeps_blended_average(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "1", "40000", day=1),
            txn("BTC", "BUY", "1", "50000", day=2),
            txn("BTC", "SELL", "1", "50000", day=3),
        ])
        assert positions["BTC"].quantity == Decimal("1")
        assert positions["BTC"].average_cost == Decimal("45000")

    @pytest.mark.parametrize("sold", ["0.1", "1", "2.5", "3.99"])
    def test_average_invariant_under_partial_sells(self, sold):
        base = [
            txn("ETH", "BUY", "1", "1800", day=1),
            txn("ETH", "BUY", "3", "2200", day=2),
        ]
        before = compute_holdings(base)["ETH"].average_cost
        after = compute_holdings(base + [txn("ETH", "SELL", sold, "9999", day=3)])["ETH"]
        assert after.average_cost == before
        assert after.total_cost == after.quantity * before

    def test_buy_after_sell_blends_with_remaining_cost(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "2", "40000", day=1),
            txn("BTC", "SELL", "1", "60000", day=2),
            txn("BTC", "BUY", "1", "50000", day=3),
        ])
        assert positions["BTC"].quantity == Decimal("2")
        assert positions["BTC"].average_cost == Decimal("45000")


class TestOversell:
    """Selling more than is held is allowed."""

    def test_quantity_goes_negative(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "1", "40000", day=1),
            txn("BTC", "SELL", "3", "50000", day=2),
        ])
        assert positions["BTC"].quantity == Decimal("-2")
        assert positions["BTC"].average_cost == Decimal("0")
        assert positions["BTC"].total_cost == Decimal("0")

    def test_fully_sold_position_has_zero_cost(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "1", "40000", day=1),
            txn("BTC", "SELL", "1", "50000", day=2),
        ])
        assert positions["BTC"].quantity == Decimal("0")
        assert positions["BTC"].average_cost == Decimal("0")
        assert not positions["BTC"].is_open

    def test_buy_back_from_negative_only_costs_units_above_zero(self):
        positions = compute_holdings([
            txn("BTC", "SELL", "1", "50000", day=1),
            txn("BTC", "BUY", "3", "40000", day=2),
        ])
        assert positions["BTC"].quantity == Decimal("2")
        assert positions["BTC"].average_cost == Decimal("40000")

    def test_open_positions_excludes_closed_and_negative(self):
        positions = compute_holdings([
            txn("BTC", "BUY", "1", "40000", day=1),
            txn("ETH", "BUY", "1", "2000", day=1),
            txn("ETH", "SELL", "1", "2100", day=2),
            txn("SOL", "SELL", "5", "100", day=1),
            txn("ADA", "BUY", "100", "0.5", day=1),
        ])
        assert [p.symbol for p in open_positions(positions)] == ["ADA", "BTC"]


class TestOrdering:
    """Chronological replay with insertion-order tie breaks."""

    def test_sell_dated_before_buy_is_applied_first(self):
        """The SELL happened first, so the later BUY sets the cost."""
        positions = compute_holdings([
            txn("BTC", "BUY", "2", "40000", day=5),
            txn("BTC", "SELL", "1", "30000", day=1),
        ])
        assert positions["BTC"].quantity == Decimal("1")
        assert positions["BTC"].average_cost == Decimal("40000")

    def test_same_timestamp_uses_created_at(self):
        first = txn("BTC", "BUY", "1", "40000", day=1, created_minute=1)
        second = txn("BTC", "SELL", "1", "50000", day=1, created_minute=2)
        assert sort_transactions([second, first]) == [first, second]

    def test_complete_ties_keep_input_order(self):
        a = txn("BTC", "BUY", "1", "40000", day=1)
        b = txn("BTC", "BUY", "1", "50000", day=1)
        assert sort_transactions([a, b]) == [a, b]
        assert sort_transactions([b, a]) == [b, a]
