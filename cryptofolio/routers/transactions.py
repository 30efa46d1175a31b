"""Transaction API endpoints - requires authentication and portfolio ownership."""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.database import get_session
from cryptofolio.dependencies import get_chart_cache, get_owned_portfolio
from cryptofolio.errors import NotFound
from cryptofolio.models import Portfolio, Transaction
from cryptofolio.schemas.common import DataResponse, PagePagination
from cryptofolio.schemas.transaction import (
    BulkDeleteResponse,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
    TransactionUpdate,
)
from cryptofolio.services import transactions as transaction_service
from cryptofolio.services.chart_cache import ChartCache

router = APIRouter()


async def get_owned_transaction(
    transaction_id: str,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
) -> Transaction:
    """Load a transaction from a portfolio the current user owns."""
    try:
        return await transaction_service.get_transaction(session, portfolio.id, transaction_id)
    except transaction_service.TransactionNotFound:
        raise NotFound("Transaction not found", code="TRANSACTION_NOT_FOUND")


@router.get(
    "/portfolios/{portfolio_id}/transactions",
    response_model=TransactionListResponse,
    summary="List transactions",
)
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=100),
    symbol: str | None = Query(None, description="Only this symbol"),
    type: str | None = Query(None, description="BUY or SELL"),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
) -> TransactionListResponse:
    """List a portfolio's transactions, newest first."""
    transactions, total = await transaction_service.list_transactions(
        session, portfolio.id, page=page, limit=limit, symbol=symbol, type=type
    )
    return TransactionListResponse(
        data=[TransactionResponse.model_validate(t) for t in transactions],
        pagination=PagePagination(
            page=page,
            limit=limit,
            total=total,
            has_next=(page - 1) * limit + len(transactions) < total,
        ),
    )


@router.post(
    "/portfolios/{portfolio_id}/transactions",
    response_model=DataResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Record a transaction",
)
async def create_transaction(
    data: TransactionCreate,
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
    chart_cache: ChartCache = Depends(get_chart_cache),
) -> DataResponse[TransactionResponse]:
    """Record a BUY or SELL.

    Errors (400): MISSING_FIELDS, INVALID_TYPE, INVALID_SYMBOL,
    INVALID_QUANTITY, INVALID_PRICE, FUTURE_DATE.
    """
    txn = await transaction_service.create_transaction(
        session,
        portfolio.id,
        symbol=data.symbol,
        type=data.type,
        quantity=data.quantity,
        price_per_unit=data.price_per_unit,
        transaction_date=data.transaction_date,
        notes=data.notes,
        chart_cache=chart_cache,
    )
    return DataResponse[TransactionResponse](data=TransactionResponse.model_validate(txn))


@router.delete(
    "/portfolios/{portfolio_id}/transactions",
    response_model=DataResponse[BulkDeleteResponse],
    summary="Delete all transactions of a symbol",
)
async def delete_symbol_transactions(
    symbol: str = Query(..., description="Symbol whose transactions are removed"),
    portfolio: Portfolio = Depends(get_owned_portfolio),
    session: AsyncSession = Depends(get_session),
    chart_cache: ChartCache = Depends(get_chart_cache),
) -> DataResponse[BulkDeleteResponse]:
    """Remove a whole holding by deleting every transaction of its symbol."""
    deleted = await transaction_service.delete_symbol_transactions(
        session, portfolio.id, symbol, chart_cache
    )
    return DataResponse[BulkDeleteResponse](
        data=BulkDeleteResponse(symbol=transaction_service.sanitize_symbol(symbol), deleted=deleted)
    )


@router.get(
    "/portfolios/{portfolio_id}/transactions/{transaction_id}",
    response_model=DataResponse[TransactionResponse],
    summary="Get a transaction",
)
async def get_transaction(
    txn: Transaction = Depends(get_owned_transaction),
) -> DataResponse[TransactionResponse]:
    return DataResponse[TransactionResponse](data=TransactionResponse.model_validate(txn))


@router.patch(
    "/portfolios/{portfolio_id}/transactions/{transaction_id}",
    response_model=DataResponse[TransactionResponse],
    summary="Update a transaction",
)
async def update_transaction(
    data: TransactionUpdate,
    txn: Transaction = Depends(get_owned_transaction),
    session: AsyncSession = Depends(get_session),
    chart_cache: ChartCache = Depends(get_chart_cache),
) -> DataResponse[TransactionResponse]:
    """Change quantity, price_per_unit, transaction_date or notes.

    Errors (400): MISSING_FIELDS, INVALID_QUANTITY, INVALID_PRICE, FUTURE_DATE.
    """
    txn = await transaction_service.update_transaction(
        session, txn, data.model_dump(exclude_unset=True), chart_cache
    )
    return DataResponse[TransactionResponse](data=TransactionResponse.model_validate(txn))


@router.delete(
    "/portfolios/{portfolio_id}/transactions/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a transaction",
)
async def delete_transaction(
    txn: Transaction = Depends(get_owned_transaction),
    session: AsyncSession = Depends(get_session),
    chart_cache: ChartCache = Depends(get_chart_cache),
) -> Response:
    await transaction_service.delete_transaction(session, txn, chart_cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
