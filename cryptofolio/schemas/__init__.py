"""Pydantic schemas for request/response validation."""

from cryptofolio.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    SessionResponse,
    UserResponse,
)
from cryptofolio.schemas.chart import ChartResponse, SnapshotResponse
from cryptofolio.schemas.common import (
    Amount,
    DataResponse,
    ErrorResponse,
    OffsetPagination,
    PagePagination,
    Percent,
)
from cryptofolio.schemas.portfolio import (
    HoldingResponse,
    PortfolioCreate,
    PortfolioDetailResponse,
    PortfolioListResponse,
    PortfolioResponse,
    PortfolioSummaryResponse,
    PortfolioUpdate,
)
from cryptofolio.schemas.price import HistoricalPriceResponse, PriceResponse
from cryptofolio.schemas.transaction import (
    BulkDeleteResponse,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
    TransactionUpdate,
)

__all__ = [
    # Common
    "Amount",
    "Percent",
    "DataResponse",
    "ErrorResponse",
    "OffsetPagination",
    "PagePagination",
    # Auth
    "RegisterRequest",
    "LoginRequest",
    "UserResponse",
    "SessionResponse",
    "AuthResponse",
    # Portfolios
    "PortfolioCreate",
    "PortfolioUpdate",
    "PortfolioResponse",
    "PortfolioListResponse",
    "HoldingResponse",
    "PortfolioSummaryResponse",
    "PortfolioDetailResponse",
    # Transactions
    "TransactionCreate",
    "TransactionUpdate",
    "TransactionResponse",
    "TransactionListResponse",
    "BulkDeleteResponse",
    # Prices and charts
    "PriceResponse",
    "HistoricalPriceResponse",
    "SnapshotResponse",
    "ChartResponse",
]
