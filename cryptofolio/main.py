"""
FastAPI application entry point.

Run with: uvicorn cryptofolio.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cryptofolio import telemetry
from cryptofolio._version import VERSION
from cryptofolio.config import get_settings
from cryptofolio.database import init_db
from cryptofolio.errors import register_error_handlers

# Import models to ensure they're registered with SQLAlchemy
from cryptofolio.models import AuthSession, Portfolio, PriceCacheEntry, Transaction, User  # noqa: F401
from cryptofolio.routers import auth_router, portfolios_router, prices_router, transactions_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup: configure logging, create database tables if they don't exist,
    initialize telemetry.
    """
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    await init_db()
    logger.info("Database initialized")

    if telemetry.setup_telemetry():
        # Attach OTLP handler to root logger for log export
        handler = telemetry.get_log_handler()
        if handler:
            logging.getLogger().addHandler(handler)
        logger.info("Telemetry initialized (OTLP metrics + logs enabled)")
    else:
        logger.info("Telemetry disabled")

    yield

    logger.info("Application shutting down")


# Create FastAPI application
app = FastAPI(
    title="Cryptofolio API",
    description="Crypto portfolio tracking: holdings, valuations and performance charts",
    version=VERSION,
    lifespan=lifespan,
)

register_error_handlers(app)

# Register routers
app.include_router(auth_router, prefix="/api", tags=["auth"])
app.include_router(portfolios_router, prefix="/api", tags=["portfolios"])
app.include_router(transactions_router, prefix="/api", tags=["transactions"])
app.include_router(prices_router, prefix="/api", tags=["prices"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/api/version")
async def get_version():
    """Get API version information."""
    return {"version": VERSION}
