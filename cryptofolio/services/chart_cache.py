"""Chart cache - short-lived store of computed snapshot series.

Keys look like ``portfolio:{portfolio_id}:chart:{interval}``. Entries expire
after the TTL and are dropped explicitly whenever a portfolio's
transactions change. The store is an injected instance, one per app.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from cachetools import TTLCache

from cryptofolio import telemetry
from cryptofolio.clock import utcnow

logger = logging.getLogger(__name__)

INTERVALS = ("24h", "7d", "30d", "90d", "all")

DEFAULT_TTL = 300


def chart_key(portfolio_id: str, interval: str) -> str:
    return f"portfolio:{portfolio_id}:chart:{interval}"


def _stamp(payload: dict) -> dict:
    return {**payload, "cached_at": utcnow().isoformat()}


class _KeyState:
    """Single-flight bookkeeping for one cache key."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.waiters = 0
        # Set when the portfolio is invalidated during a computation
        self.invalidated = False


class ChartCache:
    """Cache-aside store for chart payloads."""

    def __init__(self, ttl: int = DEFAULT_TTL, maxsize: int = 4096, timer=None):
        if timer is None:
            self._store = TTLCache(maxsize=maxsize, ttl=ttl)
        else:
            self._store = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        # Only keys with a computation running or queued have an entry
        self._inflight: dict[str, _KeyState] = {}

    def get_chart_data(self, portfolio_id: str, interval: str) -> dict | None:
        """Return the cached payload (with ``cached_at``) or None."""
        key = chart_key(portfolio_id, interval)
        try:
            payload = self._store.get(key)
        except Exception as e:
            logger.warning(f"Chart cache read failed for {key}: {e!r}")
            return None
        return dict(payload) if payload is not None else None

    def set_chart_data(self, portfolio_id: str, interval: str, payload: dict) -> dict:
        """Store a payload, stamping it with ``cached_at``.

        Returns the stored payload.
        """
        key = chart_key(portfolio_id, interval)
        stored = _stamp(payload)
        try:
            self._store[key] = stored
        except Exception as e:
            logger.warning(f"Chart cache write failed for {key}: {e!r}")
        return dict(stored)

    def invalidate_portfolio(self, portfolio_id: str) -> None:
        """Drop every cached interval for a portfolio.

        Computations already running for the portfolio will not store
        their result.
        """
        for interval in INTERVALS:
            key = chart_key(portfolio_id, interval)
            self._store.pop(key, None)
            state = self._inflight.get(key)
            if state is not None:
                state.invalidated = True
        logger.info(f"Invalidated chart cache for portfolio {portfolio_id}")

    async def get_or_compute(
        self,
        portfolio_id: str,
        interval: str,
        compute: Callable[[], Awaitable[tuple[dict, bool]]],
    ) -> dict:
        """Serve from cache, or compute and store on a miss.

        ``compute`` returns the payload and whether it may be cached.
        Concurrent misses for the same key wait on one computation. A
        result is not stored if the portfolio was invalidated while it
        was being computed.
        """
        cached = self.get_chart_data(portfolio_id, interval)
        if cached is not None:
            telemetry.record_chart_cache(True, interval)
            return cached

        key = chart_key(portfolio_id, interval)
        state = self._inflight.setdefault(key, _KeyState())
        state.waiters += 1
        try:
            async with state.lock:
                # Another caller may have filled the key while we waited
                cached = self.get_chart_data(portfolio_id, interval)
                if cached is not None:
                    telemetry.record_chart_cache(True, interval)
                    return cached

                telemetry.record_chart_cache(False, interval)
                state.invalidated = False
                payload, cacheable = await compute()
                if state.invalidated:
                    logger.info(f"Not caching {key}, portfolio changed while computing")
                    return _stamp(payload)
                if not cacheable:
                    logger.info(f"Not caching incomplete chart for {key}")
                    return _stamp(payload)
                return self.set_chart_data(portfolio_id, interval, payload)
        finally:
            state.waiters -= 1
            if state.waiters == 0 and self._inflight.get(key) is state:
                del self._inflight[key]