"""Chart service - interval-based snapshot series with caching.

The window always ends today (UTC). Past days are valued from the price
cache table; today uses the freshest current price available. Computed
series are stored in the chart cache until the TTL runs out or the
portfolio's transactions change. A series computed without current prices
is served but never cached.
"""

import logging
from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.clock import utc_today
from cryptofolio.errors import BadRequest
from cryptofolio.models import Portfolio
from cryptofolio.schemas.chart import ChartResponse, SnapshotResponse
from cryptofolio.services.chart_cache import INTERVALS, ChartCache
from cryptofolio.services.price_cache import PriceCache
from cryptofolio.services.price_source import UpstreamPriceError
from cryptofolio.services.snapshots import compute_snapshots, summarize_series
from cryptofolio.services.transactions import get_portfolio_transactions

logger = logging.getLogger(__name__)

INTERVAL_DAYS = {"24h": 1, "7d": 7, "30d": 30, "90d": 90}

# How far back "all" reaches when nothing dates the portfolio
MAX_ALL_DAYS = 365


def validate_interval(interval: str | None) -> str:
    """Return the interval or raise INVALID_INTERVAL."""
    if interval not in INTERVALS:
        raise BadRequest(
            f"Interval must be one of: {', '.join(INTERVALS)}",
            code="INVALID_INTERVAL",
            details={"allowed": list(INTERVALS)},
        )
    return interval


def chart_window(
    interval: str,
    today: date,
    created_on: date | None = None,
    first_transaction_on: date | None = None,
) -> tuple[date, date]:
    """Inclusive (start, end) dates for an interval."""
    if interval in INTERVAL_DAYS:
        return today - timedelta(days=INTERVAL_DAYS[interval]), today

    known = [d for d in (created_on, first_transaction_on) if d is not None]
    if not known:
        return today - timedelta(days=MAX_ALL_DAYS), today
    return min(min(known), today), today


async def build_chart(
    session: AsyncSession,
    portfolio: Portfolio,
    interval: str,
    price_cache: PriceCache,
    today: date | None = None,
) -> tuple[dict, bool]:
    """Compute the chart payload for one interval.

    Returns:
        JSON-ready dict matching ChartResponse (without cached_at), and
        whether today could be valued at current prices
    """
    today = today or utc_today()
    transactions = await get_portfolio_transactions(session, portfolio.id)

    first_on = min((t.transaction_date.date() for t in transactions), default=None)
    start_date, end_date = chart_window(
        interval, today, portfolio.created_at.date() if portfolio.created_at else None, first_on
    )

    symbols = sorted({t.symbol for t in transactions})
    price_history = await price_cache.price_history(symbols, start_date, end_date)

    # Today is valued at the current price, refreshed if stale
    try:
        current = await price_cache.get_current(symbols)
    except UpstreamPriceError as e:
        logger.warning(f"Charting portfolio {portfolio.id} without current prices: {e}")
        current = []
    for entry in current:
        price_history[(entry.symbol, today)] = entry.price_usd
    # Missing or stale prices for today make the series incomplete
    complete = len(current) == len(symbols) and all(price_cache.is_fresh(e) for e in current)

    snapshots = compute_snapshots(
        transactions, price_history, start_date, end_date, descending=True
    )
    summary = summarize_series(snapshots)

    chart = ChartResponse(
        interval=interval,
        snapshots=[SnapshotResponse.model_validate(s) for s in snapshots],
        current_value=summary.current_value,
        start_value=summary.start_value,
        change_abs=summary.change_abs,
        change_pct=summary.change_pct,
    )
    return chart.model_dump(mode="json", exclude={"cached_at"}), complete


async def get_chart(
    session: AsyncSession,
    portfolio: Portfolio,
    interval: str,
    price_cache: PriceCache,
    chart_cache: ChartCache,
) -> dict:
    """Serve a chart from cache, computing it on a miss.

    Raises:
        BadRequest: INVALID_INTERVAL
    """
    interval = validate_interval(interval)

    async def compute() -> tuple[dict, bool]:
        return await build_chart(session, portfolio, interval, price_cache)

    return await chart_cache.get_or_compute(portfolio.id, interval, compute)
