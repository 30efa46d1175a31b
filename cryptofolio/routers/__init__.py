"""API routers."""

from cryptofolio.routers.auth import router as auth_router
from cryptofolio.routers.portfolios import router as portfolios_router
from cryptofolio.routers.prices import router as prices_router
from cryptofolio.routers.transactions import router as transactions_router

__all__ = ["auth_router", "portfolios_router", "prices_router", "transactions_router"]
