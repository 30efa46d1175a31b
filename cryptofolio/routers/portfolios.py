"""Portfolio API endpoints - requires authentication."""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.auth import get_current_user
from cryptofolio.database import get_session
from cryptofolio.dependencies import get_chart_cache, get_owned_portfolio, get_price_cache
from cryptofolio.models import Portfolio, User
from cryptofolio.schemas.chart import ChartResponse
from cryptofolio.schemas.common import DataResponse, OffsetPagination
from cryptofolio.schemas.portfolio import (
    HoldingResponse,
    PortfolioCreate,
    PortfolioDetailResponse,
    PortfolioListResponse,
    PortfolioResponse,
    PortfolioSummaryResponse,
    PortfolioUpdate,
)
from cryptofolio.services import chart as chart_service
from cryptofolio.services import portfolio as portfolio_service
from cryptofolio.services import valuation as valuation_service
from cryptofolio.services.chart_cache import ChartCache
from cryptofolio.services.price_cache import PriceCache

router = APIRouter()


@router.get(
    "/portfolios",
    response_model=PortfolioListResponse,
    summary="List my portfolios",
)
async def list_portfolios(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> PortfolioListResponse:
    """List your portfolios, newest first."""
    portfolios, total = await portfolio_service.list_portfolios(session, user.id, limit, offset)
    return PortfolioListResponse(
        data=[PortfolioResponse.model_validate(p) for p in portfolios],
        pagination=OffsetPagination(
            limit=limit,
            offset=offset,
            total=total,
            has_next=offset + len(portfolios) < total,
        ),
    )


@router.post(
    "/portfolios",
    response_model=DataResponse[PortfolioResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a portfolio",
)
async def create_portfolio(
    data: PortfolioCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> DataResponse[PortfolioResponse]:
    """Create a new, empty portfolio.

    Errors: INVALID_NAME (400) for a missing, blank or over-long name.
    """
    portfolio = await portfolio_service.create_portfolio(
        session, user.id, data.name, data.description, data.base_currency
    )
    return DataResponse[PortfolioResponse](data=PortfolioResponse.model_validate(portfolio))


@router.get(
    "/portfolios/{portfolio_id}",
    response_model=DataResponse[PortfolioDetailResponse],
    summary="Get portfolio with holdings",
)
async def get_portfolio(
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
    price_cache: PriceCache = Depends(get_price_cache),
) -> DataResponse[PortfolioDetailResponse]:
    """Get a portfolio with its holdings valued at current prices.

    **What the numbers mean for each holding:**
    - **total_quantity**: Units you hold (buys minus sells)
    - **average_cost**: Weighted average price you paid per unit
    - **market_value**: total_quantity x current_price
    - **unrealized_pl**: market_value - total_cost

    If current prices cannot be fetched, the last cached prices are used
    and **summary.prices_stale** is true.
    """
    detail = await valuation_service.get_portfolio_detail(session, portfolio, price_cache)
    s = detail.summary
    return DataResponse[PortfolioDetailResponse](
        data=PortfolioDetailResponse(
            portfolio=PortfolioResponse.model_validate(detail.portfolio),
            holdings=[
                HoldingResponse(
                    symbol=h.symbol,
                    total_quantity=h.total_quantity,
                    average_cost=h.average_cost,
                    total_cost=h.total_cost,
                    current_price=h.current_price,
                    market_value=h.market_value,
                    unrealized_pl=h.unrealized_pl,
                    unrealized_pl_pct=h.unrealized_pl_pct,
                    price_change_24h_pct=h.price_change_24h_pct,
                )
                for h in detail.holdings
            ],
            summary=PortfolioSummaryResponse(
                total_value=s.total_value,
                total_cost=s.total_cost,
                unrealized_pl=s.unrealized_pl,
                total_pl_pct=s.total_pl_pct,
                holdings_count=s.holdings_count,
                prices_stale=s.prices_stale,
            ),
        )
    )


@router.patch(
    "/portfolios/{portfolio_id}",
    response_model=DataResponse[PortfolioResponse],
    summary="Rename or describe a portfolio",
)
async def update_portfolio(
    data: PortfolioUpdate,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
) -> DataResponse[PortfolioResponse]:
    portfolio = await portfolio_service.update_portfolio(
        session, portfolio, data.model_dump(exclude_unset=True)
    )
    return DataResponse[PortfolioResponse](data=PortfolioResponse.model_validate(portfolio))


@router.delete(
    "/portfolios/{portfolio_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a portfolio",
)
async def delete_portfolio(
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
    chart_cache: ChartCache = Depends(get_chart_cache),
) -> Response:
    """Delete a portfolio together with all of its transactions."""
    await portfolio_service.delete_portfolio(session, portfolio, chart_cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def valid_interval(interval: str = Query("30d")) -> str:
    return chart_service.validate_interval(interval)


@router.get(
    "/portfolios/{portfolio_id}/chart",
    response_model=DataResponse[ChartResponse],
    summary="Get portfolio value history",
)
async def get_chart(
    user: User = Depends(get_current_user),
    interval: str = Depends(valid_interval),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
    price_cache: PriceCache = Depends(get_price_cache),
    chart_cache: ChartCache = Depends(get_chart_cache),
) -> DataResponse[ChartResponse]:
    """Get daily snapshots of the portfolio's value, newest first.

    interval is one of 24h, 7d, 30d, 90d or all; anything else is
    INVALID_INTERVAL (400). Results are cached for a few minutes and
    refreshed as soon as a transaction changes.
    """
    payload = await chart_service.get_chart(session, portfolio, interval, price_cache, chart_cache)
    return DataResponse[ChartResponse](data=ChartResponse.model_validate(payload))
