#!/usr/bin/env python3
"""
Management script for the portfolio tracker.

Usage:
    python manage.py db status
    python manage.py db clear
    python manage.py prices backfill [--days 30] [--symbols BTC,ETH]
    python manage.py prices show [--date 2024-01-31]
    python manage.py users confirm someone@example.com
"""

import asyncio
from datetime import date, timedelta

import click
from sqlalchemy import func, select

from cryptofolio.clock import utc_today
from cryptofolio.database import AsyncSessionLocal, Base, engine
from cryptofolio.dependencies import get_price_source
from cryptofolio.models import AuthSession, Portfolio, PriceCacheEntry, Transaction, User
from cryptofolio.services import auth as auth_service
from cryptofolio.services.price_cache import PriceCache
from cryptofolio.services.price_source import (
    SUPPORTED_SYMBOLS,
    UpstreamPriceError,
    normalize_symbols,
    supported_only,
)


# ============================================================================
# Direct database operations (internal)
# ============================================================================


async def _init_db():
    """Initialize the database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _clear_db():
    """Drop and recreate all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def _count_records():
    """Count records in each table."""
    async with AsyncSessionLocal() as session:
        counts = {}
        for model, name in [
            (User, "users"),
            (AuthSession, "sessions"),
            (Portfolio, "portfolios"),
            (Transaction, "transactions"),
            (PriceCacheEntry, "price_cache"),
        ]:
            counts[name] = await session.scalar(select(func.count()).select_from(model))
        return counts


async def _backfill_prices(symbols: list[str], days: int):
    """Fetch historical prices for the last N days into the cache."""
    today = utc_today()
    stored = 0
    failed_days = 0

    async with AsyncSessionLocal() as session:
        cache = PriceCache(session, get_price_source())
        for offset in range(days, 0, -1):
            day = today - timedelta(days=offset)
            try:
                entries = await cache.get_historical(symbols, day)
            except UpstreamPriceError as e:
                failed_days += 1
                click.echo(f"  {day}: failed ({e})", err=True)
                continue
            stored += len(entries)
            click.echo(f"  {day}: {len(entries)}/{len(symbols)} prices")

    return stored, failed_days


async def _cached_prices(day: date):
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(PriceCacheEntry)
            .where(PriceCacheEntry.price_date == day)
            .order_by(PriceCacheEntry.symbol)
        )
        return list(result.scalars().all())


async def _confirm_user(email: str):
    async with AsyncSessionLocal() as session:
        return await auth_service.confirm_email(session, email)


# ============================================================================
# CLI: Main group
# ============================================================================


@click.group()
def cli():
    """Portfolio tracker management commands."""
    pass


# ============================================================================
# CLI: db
# ============================================================================


@cli.group()
def db():
    """Database management."""
    pass


@db.command("clear")
@click.confirmation_option(prompt="Are you sure you want to clear all data?")
def db_clear():
    """Clear all data from the database (destructive!)."""
    click.echo("Clearing database...")
    asyncio.run(_clear_db())
    click.echo("Database cleared and tables recreated.")


@db.command("status")
def db_status():
    """Show database status and record counts."""

    async def run():
        await _init_db()
        return await _count_records()

    counts = asyncio.run(run())

    click.echo("\nDatabase Status:")
    click.echo("-" * 30)
    for table, count in counts.items():
        click.echo(f"  {table:<15} {count:>10,}")
    click.echo("-" * 30)
    click.echo(f"  {'Total':<15} {sum(counts.values()):>10,}")


# ============================================================================
# CLI: prices
# ============================================================================


@cli.group()
def prices():
    """Manage the price cache."""
    pass


@prices.command("backfill")
@click.option("--days", "-d", default=30, show_default=True, type=click.IntRange(1, 365),
              help="Number of past days to fill")
@click.option("--symbols", "-s", default=None,
              help="Comma separated symbols (default: all supported)")
def prices_backfill(days, symbols):
    """Fill the price cache with historical prices.

    Days already cached are not fetched again.
    """
    wanted = supported_only(symbols.split(",")) if symbols else list(SUPPORTED_SYMBOLS)
    if symbols:
        dropped = set(normalize_symbols(symbols.split(","))) - set(wanted)
        if dropped:
            click.echo(f"Skipping unsupported symbols: {', '.join(sorted(dropped))}")
    if not wanted:
        raise click.ClickException("No supported symbols given")

    click.echo(f"Backfilling {len(wanted)} symbol(s) for the last {days} day(s)...")

    async def run():
        await _init_db()
        return await _backfill_prices(wanted, days)

    stored, failed_days = asyncio.run(run())
    click.echo(f"\nDone: {stored} prices available, {failed_days} day(s) failed")


@prices.command("show")
@click.option("--date", "-d", "day", default=None, type=click.DateTime(formats=["%Y-%m-%d"]),
              help="Day to show (default: today)")
def prices_show(day):
    """Show cached prices for a day."""
    day = day.date() if day else utc_today()

    async def run():
        await _init_db()
        return await _cached_prices(day)

    entries = asyncio.run(run())

    if not entries:
        click.echo(f"No cached prices for {day}.")
        return

    click.echo(f"\n{'Symbol':<8} {'Price (USD)':>20} {'24h %':>10}  {'Last updated'}")
    click.echo("-" * 70)
    for e in entries:
        change = f"{e.change_24h_pct:.2f}" if e.change_24h_pct is not None else "-"
        click.echo(f"{e.symbol:<8} {e.price_usd:>20,.8f} {change:>10}  {e.last_updated:%Y-%m-%d %H:%M:%S}")
    click.echo(f"\nTotal: {len(entries)} prices for {day}")


# ============================================================================
# CLI: users
# ============================================================================


@cli.group()
def users():
    """Manage users."""
    pass


@users.command("confirm")
@click.argument("email")
def users_confirm(email):
    """Mark a user's email address as confirmed."""

    async def run():
        await _init_db()
        return await _confirm_user(email)

    user = asyncio.run(run())
    if user is None:
        raise click.ClickException(f"No user with email {email}")
    click.echo(f"Confirmed {user.email}")


if __name__ == "__main__":
    cli()
