"""Price API endpoints - requires authentication."""

import re
from datetime import date

from fastapi import APIRouter, Depends, Query, Response

from cryptofolio.auth import get_current_user
from cryptofolio.clock import utc_today
from cryptofolio.config import STALE_PRICE_THRESHOLD_MS
from cryptofolio.dependencies import get_price_cache
from cryptofolio.errors import BadRequest, UpstreamError
from cryptofolio.models import User
from cryptofolio.schemas.common import DataResponse
from cryptofolio.schemas.price import HistoricalPriceResponse, PriceResponse
from cryptofolio.services.price_cache import PriceCache
from cryptofolio.services.price_source import UpstreamPriceError, normalize_symbols

router = APIRouter()

# Same window as the price staleness threshold
PRICE_MAX_AGE = STALE_PRICE_THRESHOLD_MS // 1000

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_symbols(symbols: str | None) -> list[str]:
    """Split a comma separated symbols parameter.

    Raises:
        BadRequest: If no symbol was given
    """
    parsed = normalize_symbols((symbols or "").split(","))
    if not parsed:
        raise BadRequest("Symbols parameter is required")
    return parsed


def parse_price_date(value: str | None) -> date:
    """Parse a YYYY-MM-DD date that is not in the future.

    Raises:
        BadRequest: If missing, malformed or in the future
    """
    if not value:
        raise BadRequest("Date parameter is required")
    if not DATE_RE.match(value):
        raise BadRequest("Date must be in YYYY-MM-DD format")
    try:
        day = date.fromisoformat(value)
    except ValueError:
        raise BadRequest(f"Invalid date: {value}")
    if day > utc_today():
        raise BadRequest("Cannot fetch prices for future dates")
    return day


@router.get(
    "/prices",
    response_model=DataResponse[list[PriceResponse]],
    summary="Get current prices",
)
async def get_prices(
    response: Response,
    symbols: str | None = Query(None, description="Comma separated, e.g. BTC,ETH"),
    user: User = Depends(get_current_user),
    price_cache: PriceCache = Depends(get_price_cache),
) -> DataResponse[list[PriceResponse]]:
    """Get current USD prices.

    Unsupported symbols are left out of the result. Prices are at most
    30 seconds old unless the upstream API is unavailable, in which case
    the last known prices are returned.
    """
    wanted = parse_symbols(symbols)
    try:
        entries = await price_cache.get_current(wanted)
    except UpstreamPriceError as e:
        raise UpstreamError("Failed to fetch prices") from e

    response.headers["Cache-Control"] = (
        f"public, max-age={PRICE_MAX_AGE}, s-maxage={PRICE_MAX_AGE}"
    )
    return DataResponse[list[PriceResponse]](
        data=[PriceResponse.model_validate(e) for e in entries]
    )


@router.get(
    "/prices/historical",
    response_model=DataResponse[list[HistoricalPriceResponse]],
    summary="Get prices on a past day",
)
async def get_historical_prices(
    symbols: str | None = Query(None, description="Comma separated, e.g. BTC,ETH"),
    date_param: str | None = Query(None, alias="date", description="YYYY-MM-DD"),
    user: User = Depends(get_current_user),
    price_cache: PriceCache = Depends(get_price_cache),
) -> DataResponse[list[HistoricalPriceResponse]]:
    """Get USD prices for a given day, sorted by symbol.

    Historical prices never change, so once fetched they are served from
    the cache forever.
    """
    wanted = parse_symbols(symbols)
    day = parse_price_date(date_param)
    try:
        entries = await price_cache.get_historical(wanted, day)
    except UpstreamPriceError as e:
        raise UpstreamError("Failed to fetch historical prices") from e

    return DataResponse[list[HistoricalPriceResponse]](
        data=[HistoricalPriceResponse.model_validate(e) for e in entries]
    )
