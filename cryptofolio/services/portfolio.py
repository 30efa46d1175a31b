"""Portfolio service - CRUD and ownership checks."""

import logging
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.errors import BadRequest
from cryptofolio.models import Portfolio, Transaction
from cryptofolio.services.chart_cache import ChartCache

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100


class PortfolioNotFound(LookupError):
    """No portfolio with that id exists."""


class PortfolioForbidden(PermissionError):
    """The portfolio exists but belongs to another user."""


def validate_name(name: str | None) -> str:
    """Return the trimmed name or raise INVALID_NAME."""
    trimmed = (name or "").strip()
    if not trimmed or len(trimmed) > MAX_NAME_LENGTH:
        raise BadRequest(
            f"Portfolio name must be 1-{MAX_NAME_LENGTH} characters",
            code="INVALID_NAME",
        )
    return trimmed


def _clean_description(description: str | None) -> str | None:
    if description is None:
        return None
    return description.strip() or None


async def resolve_portfolio(session: AsyncSession, portfolio_id: str, user_id: str) -> Portfolio:
    """Load a portfolio on behalf of a user.

    Raises:
        PortfolioNotFound: If the portfolio does not exist
        PortfolioForbidden: If it belongs to someone else
    """
    portfolio = await session.get(Portfolio, portfolio_id)
    if portfolio is None:
        raise PortfolioNotFound(portfolio_id)
    if portfolio.user_id != user_id:
        raise PortfolioForbidden(portfolio_id)
    return portfolio


async def list_portfolios(
    session: AsyncSession,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Portfolio], int]:
    """List a user's portfolios, newest first.

    Returns:
        (page of portfolios, total count)
    """
    total = await session.scalar(
        select(func.count()).select_from(Portfolio).where(Portfolio.user_id == user_id)
    )
    result = await session.execute(
        select(Portfolio)
        .where(Portfolio.user_id == user_id)
        .order_by(Portfolio.created_at.desc(), Portfolio.id)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def create_portfolio(
    session: AsyncSession,
    user_id: str,
    name: str,
    description: str | None = None,
    base_currency: str = "USD",
) -> Portfolio:
    """Create a portfolio for a user.

    Raises:
        BadRequest: INVALID_NAME
    """
    portfolio = Portfolio(
        id=str(uuid.uuid4()),
        user_id=user_id,
        name=validate_name(name),
        description=_clean_description(description),
        base_currency=(base_currency or "USD").upper(),
    )
    session.add(portfolio)
    await session.commit()
    await session.refresh(portfolio)

    logger.info(f"Created portfolio {portfolio.id} for user {user_id}")
    return portfolio


async def update_portfolio(session: AsyncSession, portfolio: Portfolio, changes: dict) -> Portfolio:
    """Apply a partial update (name and/or description).

    Raises:
        BadRequest: INVALID_NAME or MISSING_FIELDS
    """
    if not any(field in changes for field in ("name", "description")):
        raise BadRequest("Provide a name or description to update", code="MISSING_FIELDS")

    if "name" in changes:
        portfolio.name = validate_name(changes["name"])
    if "description" in changes:
        portfolio.description = _clean_description(changes["description"])

    await session.commit()
    await session.refresh(portfolio)
    return portfolio


async def delete_portfolio(
    session: AsyncSession,
    portfolio: Portfolio,
    chart_cache: ChartCache | None = None,
) -> None:
    """Delete a portfolio and its transactions."""
    portfolio_id = portfolio.id
    # Bulk deletes skip ORM cascades, so transactions go first
    await session.execute(delete(Transaction).where(Transaction.portfolio_id == portfolio_id))
    await session.execute(delete(Portfolio).where(Portfolio.id == portfolio_id))
    await session.commit()

    if chart_cache is not None:
        chart_cache.invalidate_portfolio(portfolio_id)
    logger.info(f"Deleted portfolio {portfolio_id}")
