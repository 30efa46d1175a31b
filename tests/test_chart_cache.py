"""Tests for the chart cache."""

import asyncio

import pytest

from cryptofolio.services.chart_cache import INTERVALS, ChartCache, chart_key


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


PAYLOAD = {"interval": "7d", "snapshots": [], "current_value": "0"}


class TestChartCache:
    def test_key_format(self):
        assert chart_key("abc", "30d") == "portfolio:abc:chart:30d"

    def test_miss(self):
        assert ChartCache().get_chart_data("p1", "7d") is None

    def test_set_stamps_cached_at(self):
        cache = ChartCache()
        stored = cache.set_chart_data("p1", "7d", PAYLOAD)

        assert stored["cached_at"]
        assert "cached_at" not in PAYLOAD

        cached = cache.get_chart_data("p1", "7d")
        assert cached == stored

    def test_returned_payload_is_a_copy(self):
        cache = ChartCache()
        cache.set_chart_data("p1", "7d", PAYLOAD)
        cache.get_chart_data("p1", "7d")["current_value"] = "999"
        assert cache.get_chart_data("p1", "7d")["current_value"] == "0"

    def test_invalidate_drops_every_interval(self):
        cache = ChartCache()
        for interval in INTERVALS:
            cache.set_chart_data("p1", interval, PAYLOAD)
            cache.set_chart_data("p2", interval, PAYLOAD)

        cache.invalidate_portfolio("p1")

        assert all(cache.get_chart_data("p1", i) is None for i in INTERVALS)
        assert all(cache.get_chart_data("p2", i) is not None for i in INTERVALS)

    def test_invalidate_unknown_portfolio_is_noop(self):
        ChartCache().invalidate_portfolio("nothing-here")

    def test_entries_expire_after_ttl(self):
        timer = FakeTimer()
        cache = ChartCache(ttl=300, timer=timer)
        cache.set_chart_data("p1", "24h", PAYLOAD)

        timer.now = 299
        assert cache.get_chart_data("p1", "24h") is not None

        timer.now = 301
        assert cache.get_chart_data("p1", "24h") is None


class TestGetOrCompute:
    @pytest.mark.asyncio
    async def test_computes_on_miss_then_serves_cache(self):
        cache = ChartCache()
        calls = []

        async def compute():
            calls.append(1)
            return dict(PAYLOAD), True

        first = await cache.get_or_compute("p1", "7d", compute)
        second = await cache.get_or_compute("p1", "7d", compute)

        assert len(calls) == 1
        assert first == second
        assert "cached_at" in first

    @pytest.mark.asyncio
    async def test_concurrent_misses_compute_once(self):
        cache = ChartCache()
        calls = []

        async def compute():
            calls.append(1)
            await asyncio.sleep(0.01)
            return dict(PAYLOAD), True

        results = await asyncio.gather(
            *(cache.get_or_compute("p1", "30d", compute) for _ in range(5))
        )

        assert len(calls) == 1
        assert all(r == results[0] for r in results)

    @pytest.mark.asyncio
    async def test_compute_error_is_not_cached(self):
        cache = ChartCache()

        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("p1", "7d", broken)
        assert cache.get_chart_data("p1", "7d") is None

    @pytest.mark.asyncio
    async def test_incomplete_result_is_served_but_not_cached(self):
        cache = ChartCache()

        async def degraded():
            return dict(PAYLOAD), False

        result = await cache.get_or_compute("p1", "7d", degraded)

        assert result["cached_at"]
        assert result["current_value"] == "0"
        assert cache.get_chart_data("p1", "7d") is None

    @pytest.mark.asyncio
    async def test_invalidated_while_computing_is_not_stored(self):
        cache = ChartCache()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow():
            started.set()
            await release.wait()
            return dict(PAYLOAD), True

        task = asyncio.create_task(cache.get_or_compute("p1", "7d", slow))
        await started.wait()
        cache.invalidate_portfolio("p1")
        release.set()

        result = await task
        assert result["current_value"] == "0"
        assert cache.get_chart_data("p1", "7d") is None

    @pytest.mark.asyncio
    async def test_other_portfolio_invalidation_does_not_block_store(self):
        cache = ChartCache()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow():
            started.set()
            await release.wait()
            return dict(PAYLOAD), True

        task = asyncio.create_task(cache.get_or_compute("p1", "7d", slow))
        await started.wait()
        cache.invalidate_portfolio("p2")
        release.set()

        await task
        assert cache.get_chart_data("p1", "7d") is not None

    @pytest.mark.asyncio
    async def test_waiter_recomputes_after_invalidated_run(self):
        cache = ChartCache()
        started = asyncio.Event()
        release = asyncio.Event()
        values = iter(["old", "new"])

        async def compute():
            value = next(values)
            if value == "old":
                started.set()
                await release.wait()
            return {**PAYLOAD, "current_value": value}, True

        first = asyncio.create_task(cache.get_or_compute("p1", "7d", compute))
        await started.wait()
        second = asyncio.create_task(cache.get_or_compute("p1", "7d", compute))
        await asyncio.sleep(0)
        cache.invalidate_portfolio("p1")
        release.set()

        assert (await first)["current_value"] == "old"
        assert (await second)["current_value"] == "new"
        assert cache.get_chart_data("p1", "7d")["current_value"] == "new"


class TestKeyBookkeeping:
    @pytest.mark.asyncio
    async def test_nothing_left_after_sequential_misses(self):
        cache = ChartCache()

        async def compute():
            return dict(PAYLOAD), True

        for interval in INTERVALS:
            await cache.get_or_compute("p1", interval, compute)

        assert cache._inflight == {}

    @pytest.mark.asyncio
    async def test_nothing_left_after_concurrent_misses(self):
        cache = ChartCache()

        async def compute():
            await asyncio.sleep(0.01)
            return dict(PAYLOAD), True

        await asyncio.gather(
            *(cache.get_or_compute(f"p{n % 3}", "30d", compute) for n in range(9))
        )

        assert cache._inflight == {}

    @pytest.mark.asyncio
    async def test_nothing_left_after_failed_compute(self):
        cache = ChartCache()

        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("p1", "7d", broken)

        assert cache._inflight == {}
