"""Valuation service - a portfolio's holdings valued at current prices."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.models import Portfolio, PriceCacheEntry
from cryptofolio.services.holdings import ZERO, compute_holdings, open_positions
from cryptofolio.services.price_cache import PriceCache
from cryptofolio.services.price_source import UpstreamPriceError, is_supported
from cryptofolio.services.snapshots import percent
from cryptofolio.services.transactions import get_portfolio_transactions

logger = logging.getLogger(__name__)


@dataclass
class HoldingValuation:
    """A position with current value and unrealized P/L."""

    symbol: str
    total_quantity: Decimal
    average_cost: Decimal
    total_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    unrealized_pl: Decimal
    unrealized_pl_pct: Decimal
    price_change_24h_pct: Decimal | None


@dataclass
class ValuationSummary:
    """Totals across a portfolio's holdings."""

    total_value: Decimal
    total_cost: Decimal
    unrealized_pl: Decimal
    total_pl_pct: Decimal
    holdings_count: int
    prices_stale: bool


@dataclass
class PortfolioDetail:
    portfolio: Portfolio
    holdings: list[HoldingValuation]
    summary: ValuationSummary


async def current_prices(
    price_cache: PriceCache, symbols: list[str]
) -> tuple[dict[str, PriceCacheEntry], bool]:
    """Current price entries for symbols, and whether any are stale.

    An upstream failure with nothing cached yields no entries rather than
    an error; the affected holdings are then valued at 0 and flagged stale.
    """
    if not symbols:
        return {}, False

    try:
        entries = await price_cache.get_current(symbols)
    except UpstreamPriceError as e:
        logger.warning(f"No prices available for {symbols}: {e}")
        return {}, True

    by_symbol = {entry.symbol: entry for entry in entries}
    stale = any(not price_cache.is_fresh(entry) for entry in entries)
    stale = stale or any(is_supported(s) and s not in by_symbol for s in symbols)
    return by_symbol, stale


async def get_portfolio_detail(
    session: AsyncSession,
    portfolio: Portfolio,
    price_cache: PriceCache,
) -> PortfolioDetail:
    """Value a portfolio's open positions at current prices.

    Args:
        session: Database session
        portfolio: An already authorized portfolio
        price_cache: Price cache bound to the same session

    Returns:
        Portfolio, holdings sorted by symbol, and summary totals
    """
    transactions = await get_portfolio_transactions(session, portfolio.id)
    positions = open_positions(compute_holdings(transactions))

    prices, prices_stale = await current_prices(price_cache, [p.symbol for p in positions])

    holdings = []
    total_value = ZERO
    total_cost = ZERO
    for position in positions:
        entry = prices.get(position.symbol)
        price = Decimal(entry.price_usd) if entry is not None else ZERO
        market_value = position.quantity * price
        unrealized_pl = market_value - position.total_cost

        holdings.append(
            HoldingValuation(
                symbol=position.symbol,
                total_quantity=position.quantity,
                average_cost=position.average_cost,
                total_cost=position.total_cost,
                current_price=price,
                market_value=market_value,
                unrealized_pl=unrealized_pl,
                unrealized_pl_pct=percent(unrealized_pl, position.total_cost),
                price_change_24h_pct=entry.change_24h_pct if entry is not None else None,
            )
        )
        total_value += market_value
        total_cost += position.total_cost

    unrealized_pl = total_value - total_cost
    summary = ValuationSummary(
        total_value=total_value,
        total_cost=total_cost,
        unrealized_pl=unrealized_pl,
        total_pl_pct=percent(unrealized_pl, total_cost),
        holdings_count=len(holdings),
        prices_stale=prices_stale,
    )
    return PortfolioDetail(portfolio=portfolio, holdings=holdings, summary=summary)
