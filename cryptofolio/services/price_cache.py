"""Price cache - the source of truth for valuations.

Rows are keyed by (symbol, price_date). Today's row is the "current" price
and is refreshed from the upstream source once it is older than the
staleness threshold. Rows for past dates are historical and kept forever.

When the upstream source fails, the last known cached price is served
instead. A price is never invented: if nothing is cached, the failure is
surfaced to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable

from sqlalchemy import and_, desc, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio import telemetry
from cryptofolio.clock import utcnow
from cryptofolio.config import STALE_PRICE_THRESHOLD_MS
from cryptofolio.models import PriceCacheEntry
from cryptofolio.services.price_source import (
    PriceQuote,
    PriceSource,
    UpstreamPriceError,
    supported_only,
)
from cryptofolio.services.snapshots import PriceHistory

logger = logging.getLogger(__name__)


@dataclass
class CacheLookup:
    """Result of a batch lookup: rows found and symbols not found."""

    hits: list[PriceCacheEntry] = field(default_factory=list)
    misses: list[str] = field(default_factory=list)


class PriceCache:
    """Price lookups over the price_cache table with upstream refresh."""

    def __init__(
        self,
        session: AsyncSession,
        source: PriceSource,
        now: Callable[[], datetime] = utcnow,
        stale_after_ms: int = STALE_PRICE_THRESHOLD_MS,
        fetch_timeout: float = 15.0,
    ):
        self.session = session
        self.source = source
        self.now = now
        self.stale_after = timedelta(milliseconds=stale_after_ms)
        self.fetch_timeout = fetch_timeout

    # ------------------------------------------------------------------
    # Plain keyed access
    # ------------------------------------------------------------------

    async def get(self, symbol: str, day: date) -> PriceCacheEntry | None:
        """Get the cached entry for (symbol, day), or None on a miss."""
        result = await self.session.execute(
            select(PriceCacheEntry)
            .where(and_(PriceCacheEntry.symbol == symbol.upper(), PriceCacheEntry.price_date == day))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(self, symbols: list[str], day: date) -> CacheLookup:
        """Look up several symbols for one day."""
        wanted = [s.upper() for s in symbols]
        if not wanted:
            return CacheLookup()

        result = await self.session.execute(
            select(PriceCacheEntry)
            .where(and_(PriceCacheEntry.symbol.in_(wanted), PriceCacheEntry.price_date == day))
            .execution_options(populate_existing=True)
        )
        found = {entry.symbol: entry for entry in result.scalars().all()}
        return CacheLookup(
            hits=[found[s] for s in wanted if s in found],
            misses=[s for s in wanted if s not in found],
        )

    async def upsert(self, symbol: str, day: date, quote: PriceQuote) -> None:
        """Insert or replace the entry for (symbol, day)."""
        await self.upsert_many(day, [quote], symbols=[symbol])

    async def upsert_many(
        self,
        day: date,
        quotes: list[PriceQuote],
        symbols: list[str] | None = None,
    ) -> None:
        """Insert or replace entries for one day. Last writer wins per key."""
        if not quotes:
            return

        now = self.now()
        rows = [
            {
                "symbol": (symbols[i] if symbols else quote.symbol).upper(),
                "price_date": day,
                "price_usd": quote.price_usd,
                "market_cap": quote.market_cap,
                "volume_24h": quote.volume_24h,
                "change_24h_pct": quote.change_24h_pct,
                "last_updated": now,
            }
            for i, quote in enumerate(quotes)
        ]

        dialect = self.session.bind.dialect.name if self.session.bind is not None else ""
        if dialect in ("sqlite", "postgresql"):
            insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
            stmt = insert(PriceCacheEntry).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["symbol", "price_date"],
                set_={
                    "price_usd": stmt.excluded.price_usd,
                    "market_cap": stmt.excluded.market_cap,
                    "volume_24h": stmt.excluded.volume_24h,
                    "change_24h_pct": stmt.excluded.change_24h_pct,
                    "last_updated": stmt.excluded.last_updated,
                },
            )
            await self.session.execute(stmt)
        else:
            for row in rows:
                await self.session.merge(PriceCacheEntry(**row))

        await self.session.commit()

    # ------------------------------------------------------------------
    # Current prices
    # ------------------------------------------------------------------

    def is_fresh(self, entry: PriceCacheEntry) -> bool:
        """Whether a cached current price is within the staleness window."""
        return self.now() - entry.last_updated <= self.stale_after

    async def get_current(self, symbols: list[str]) -> list[PriceCacheEntry]:
        """Get current prices, refreshing stale or missing ones upstream.

        Unsupported symbols are dropped silently. Results follow the order
        of the requested symbols.

        Raises:
            UpstreamPriceError: If the refresh failed and no requested
                symbol has any cached price to fall back on
        """
        wanted = supported_only(symbols)
        if not wanted:
            return []

        today = self.now().date()
        lookup = await self.get_many(wanted, today)
        served = {e.symbol: e for e in lookup.hits if self.is_fresh(e)}
        to_refresh = [s for s in wanted if s not in served]
        telemetry.record_price_cache(len(served), len(to_refresh), "current")

        if to_refresh:
            try:
                quotes = await asyncio.wait_for(
                    self.source.fetch_current(to_refresh), timeout=self.fetch_timeout
                )
                await self.upsert_many(today, quotes)
                refreshed = await self.get_many([q.symbol for q in quotes], today)
                served.update({e.symbol: e for e in refreshed.hits})
                logger.info(f"Refreshed current prices for {len(quotes)} symbol(s)")
            except (UpstreamPriceError, asyncio.TimeoutError) as e:
                logger.warning(f"Current price refresh failed, serving cached prices: {e!r}")
                fallback = await self.current_price_map([s for s in to_refresh if s not in served])
                served.update(fallback)
                if not served:
                    raise UpstreamPriceError("Failed to fetch prices") from e

        return [served[s] for s in wanted if s in served]

    async def current_price_map(self, symbols: list[str]) -> dict[str, PriceCacheEntry]:
        """Most recent cached entry per symbol, without any refresh."""
        wanted = [s.upper() for s in symbols]
        if not wanted:
            return {}

        result = await self.session.execute(
            select(PriceCacheEntry)
            .where(PriceCacheEntry.symbol.in_(wanted))
            .order_by(PriceCacheEntry.symbol, desc(PriceCacheEntry.price_date))
        )
        latest: dict[str, PriceCacheEntry] = {}
        for entry in result.scalars().all():
            latest.setdefault(entry.symbol, entry)
        return latest

    # ------------------------------------------------------------------
    # Historical prices
    # ------------------------------------------------------------------

    async def get_historical(self, symbols: list[str], day: date) -> list[PriceCacheEntry]:
        """Get prices for a past day, fetching and storing any misses.

        Today has no closing price yet, so it is served as the current
        price. Returns entries sorted by symbol.

        Raises:
            UpstreamPriceError: If the fetch failed and nothing was cached
        """
        wanted = supported_only(symbols)
        if not wanted:
            return []

        if day >= self.now().date():
            return sorted(await self.get_current(wanted), key=lambda e: e.symbol)

        lookup = await self.get_many(wanted, day)
        telemetry.record_price_cache(len(lookup.hits), len(lookup.misses), "historical")
        entries = list(lookup.hits)

        if lookup.misses:
            try:
                quotes = await self.source.fetch_historical(lookup.misses, day)
            except UpstreamPriceError as e:
                logger.warning(f"Historical price fetch failed for {day}: {e}")
                if not entries:
                    raise
                quotes = []

            if quotes:
                await self.upsert_many(day, quotes)
                fetched = await self.get_many([q.symbol for q in quotes], day)
                entries.extend(fetched.hits)

        return sorted(entries, key=lambda e: e.symbol)

    async def price_history(
        self, symbols: list[str], start_date: date, end_date: date
    ) -> PriceHistory:
        """Cached prices for a date range as {(symbol, day): price}."""
        wanted = [s.upper() for s in symbols]
        if not wanted:
            return {}

        result = await self.session.execute(
            select(PriceCacheEntry.symbol, PriceCacheEntry.price_date, PriceCacheEntry.price_usd)
            .where(
                and_(
                    PriceCacheEntry.symbol.in_(wanted),
                    PriceCacheEntry.price_date >= start_date,
                    PriceCacheEntry.price_date <= end_date,
                )
            )
        )
        return {(row.symbol, row.price_date): Decimal(row.price_usd) for row in result.all()}
