"""Clock helpers. All stored timestamps are naive UTC."""

from datetime import UTC, date, datetime


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(UTC).replace(tzinfo=None)


def utc_today() -> date:
    """Current UTC calendar date."""
    return utcnow().date()
