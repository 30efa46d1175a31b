"""Shared FastAPI dependencies: price source, caches and portfolio access."""

import logging
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.auth import get_current_user
from cryptofolio.config import get_settings
from cryptofolio.database import get_session
from cryptofolio.errors import NotFound
from cryptofolio.models import Portfolio, User
from cryptofolio.services.chart_cache import ChartCache
from cryptofolio.services.portfolio import PortfolioForbidden, PortfolioNotFound, resolve_portfolio
from cryptofolio.services.price_cache import PriceCache
from cryptofolio.services.price_source import CoinGeckoPriceSource, PriceSource

logger = logging.getLogger(__name__)


@lru_cache
def get_price_source() -> PriceSource:
    """The upstream price source, shared by all requests."""
    settings = get_settings()
    return CoinGeckoPriceSource(
        base_url=settings.price_api_base_url,
        api_key=settings.price_api_key,
        timeout=settings.price_api_timeout,
        min_interval=settings.price_api_min_interval,
    )


@lru_cache
def get_chart_cache() -> ChartCache:
    """The chart snapshot cache, shared by all requests."""
    settings = get_settings()
    return ChartCache(ttl=settings.chart_cache_ttl, maxsize=settings.chart_cache_maxsize)


async def get_price_cache(
    session: AsyncSession = Depends(get_session),
    source: PriceSource = Depends(get_price_source),
) -> PriceCache:
    """A price cache bound to the request's database session."""
    return PriceCache(session, source)


async def get_owned_portfolio(
    portfolio_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Portfolio:
    """Load a portfolio the current user owns.

    Foreign and missing portfolios both answer 404 so that ids of other
    users' portfolios cannot be probed.

    Raises:
        NotFound: PORTFOLIO_NOT_FOUND
    """
    try:
        return await resolve_portfolio(session, portfolio_id, user.id)
    except PortfolioNotFound:
        raise NotFound("Portfolio not found", code="PORTFOLIO_NOT_FOUND")
    except PortfolioForbidden:
        logger.warning(f"User {user.id} denied access to portfolio {portfolio_id}")
        raise NotFound("Portfolio not found", code="PORTFOLIO_NOT_FOUND")
