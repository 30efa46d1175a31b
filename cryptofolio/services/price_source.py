"""Upstream price source - CoinGecko REST client.

Current prices come from /simple/price (one request for all symbols),
historical prices from /coins/{id}/history (one request per symbol, spaced
by a minimum interval to respect the free-tier rate limit).
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Protocol

import httpx

from cryptofolio import telemetry
from cryptofolio.clock import utcnow

logger = logging.getLogger(__name__)


# Supported symbols -> CoinGecko coin ids
COINGECKO_IDS: dict[str, str] = {
    # Top 10 by market cap
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "BNB": "binancecoin",
    "SOL": "solana",
    "USDC": "usd-coin",
    "XRP": "ripple",
    "ADA": "cardano",
    "AVAX": "avalanche-2",
    "DOGE": "dogecoin",
    # DeFi & layer 1
    "DOT": "polkadot",
    "MATIC": "matic-network",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "ATOM": "cosmos",
    "LTC": "litecoin",
    "NEAR": "near",
    "APT": "aptos",
    "ARB": "arbitrum",
    "OP": "optimism",
    # Meme
    "SHIB": "shiba-inu",
    "PEPE": "pepe",
    "WIF": "dogwifcoin",
    "BONK": "bonk",
    "FLOKI": "floki",
    # Emerging & infrastructure
    "SUI": "sui",
    "SEI": "sei-network",
    "INJ": "injective-protocol",
    "TIA": "celestia",
    "RUNE": "thorchain",
}

SUPPORTED_SYMBOLS = tuple(COINGECKO_IDS)


def is_supported(symbol: str) -> bool:
    return symbol.upper() in COINGECKO_IDS


def normalize_symbols(symbols: Iterable[str]) -> list[str]:
    """Uppercase, strip, de-duplicate (keeping first-seen order), drop blanks."""
    seen = []
    for raw in symbols:
        symbol = raw.strip().upper()
        if symbol and symbol not in seen:
            seen.append(symbol)
    return seen


def supported_only(symbols: Iterable[str]) -> list[str]:
    """Normalize symbols and silently drop the unsupported ones."""
    return [s for s in normalize_symbols(symbols) if s in COINGECKO_IDS]


class UpstreamPriceError(Exception):
    """The price source could not be reached or returned an error."""


@dataclass(frozen=True)
class PriceQuote:
    """A price observation from the upstream source."""

    symbol: str
    price_usd: Decimal
    market_cap: Decimal | None = None
    volume_24h: Decimal | None = None
    change_24h_pct: Decimal | None = None
    observed_at: datetime | None = None


class PriceSource(Protocol):
    """Where prices come from when the cache cannot answer."""

    async def fetch_current(self, symbols: list[str]) -> list[PriceQuote]:
        ...

    async def fetch_historical(self, symbols: list[str], day: date) -> list[PriceQuote]:
        ...


def _decimal(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


class RateLimiter:
    """Spaces calls at least min_interval seconds apart."""

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_call = 0.0

    async def wait(self) -> None:
        async with self._lock:
            delay = self._last_call + self.min_interval - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            self._last_call = time.monotonic()


class CoinGeckoPriceSource:
    """PriceSource backed by the CoinGecko public API."""

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        api_key: str = "",
        timeout: float = 10.0,
        min_interval: float = 1.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self.rate_limiter = RateLimiter(min_interval)

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
        )

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: dict) -> dict:
        telemetry.record_upstream_fetch()
        try:
            response = await client.get(path, params=params)
        except httpx.HTTPError as e:
            telemetry.record_upstream_failure()
            raise UpstreamPriceError(f"Price API request failed: {e!r}") from e

        if response.status_code == 429:
            telemetry.record_upstream_failure()
            raise UpstreamPriceError("Price API rate limit exceeded")
        if response.status_code >= 400:
            telemetry.record_upstream_failure()
            raise UpstreamPriceError(f"Price API error: HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            telemetry.record_upstream_failure()
            raise UpstreamPriceError("Price API returned invalid JSON") from e

    async def fetch_current(self, symbols: list[str]) -> list[PriceQuote]:
        """Fetch current prices for supported symbols.

        Unsupported symbols, and symbols the API has no price for, are
        omitted from the result.
        """
        wanted = supported_only(symbols)
        if not wanted:
            return []

        ids = {COINGECKO_IDS[s]: s for s in wanted}
        async with self._client() as client:
            data = await self._get_json(
                client,
                "/simple/price",
                {
                    "ids": ",".join(ids),
                    "vs_currencies": "usd",
                    "include_market_cap": "true",
                    "include_24hr_vol": "true",
                    "include_24hr_change": "true",
                },
            )

        observed_at = utcnow()
        quotes = []
        for coin_id, symbol in ids.items():
            entry = data.get(coin_id) or {}
            if entry.get("usd") is None:
                logger.warning(f"No current price for {symbol} ({coin_id})")
                continue
            quotes.append(
                PriceQuote(
                    symbol=symbol,
                    price_usd=_decimal(entry["usd"]),
                    market_cap=_decimal(entry.get("usd_market_cap")),
                    volume_24h=_decimal(entry.get("usd_24h_vol")),
                    change_24h_pct=_decimal(entry.get("usd_24h_change")),
                    observed_at=observed_at,
                )
            )
        return quotes

    async def fetch_historical(self, symbols: list[str], day: date) -> list[PriceQuote]:
        """Fetch the price of each supported symbol on a given day.

        Raises UpstreamPriceError only if every request failed; partial
        failures are logged and the successful quotes returned.
        """
        wanted = supported_only(symbols)
        if not wanted:
            return []

        quotes = []
        failures = 0
        async with self._client() as client:
            for symbol in wanted:
                await self.rate_limiter.wait()
                try:
                    data = await self._get_json(
                        client,
                        f"/coins/{COINGECKO_IDS[symbol]}/history",
                        {"date": day.strftime("%d-%m-%Y"), "localization": "false"},
                    )
                except UpstreamPriceError as e:
                    logger.warning(f"Historical price fetch failed for {symbol} on {day}: {e}")
                    failures += 1
                    continue

                market_data = data.get("market_data") or {}
                price = (market_data.get("current_price") or {}).get("usd")
                if price is None:
                    logger.warning(f"No historical price for {symbol} on {day}")
                    continue
                quotes.append(
                    PriceQuote(
                        symbol=symbol,
                        price_usd=_decimal(price),
                        market_cap=_decimal((market_data.get("market_cap") or {}).get("usd")),
                        volume_24h=_decimal((market_data.get("total_volume") or {}).get("usd")),
                    )
                )

        if failures == len(wanted):
            raise UpstreamPriceError(f"Failed to fetch historical prices for {day}")
        return quotes
