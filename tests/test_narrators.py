"""Tests for NarratorCache."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from voicepeak_broker.errors import ProcessFailed
from voicepeak_broker.narrators import NarratorCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestNarratorCache:
    """Tests for NarratorCache class."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        """Create a fake clock."""
        return FakeClock()

    @pytest.fixture
    def fetch(self) -> AsyncMock:
        """Create a fetch returning two narrators."""
        return AsyncMock(return_value=["Japanese Female 1", "Japanese Male 1"])

    @pytest.fixture
    def cache(self, fetch: AsyncMock, clock: FakeClock) -> NarratorCache:
        """Create cache with a 5 minute TTL."""
        return NarratorCache(fetch, ttl=300.0, clock=clock)

    @pytest.mark.asyncio
    async def test_get_returns_fetched_names(self, cache: NarratorCache) -> None:
        """Test the fetched set."""
        assert await cache.get() == frozenset({"Japanese Female 1", "Japanese Male 1"})

    @pytest.mark.asyncio
    async def test_get_cached_within_ttl(
        self, cache: NarratorCache, fetch: AsyncMock, clock: FakeClock
    ) -> None:
        """Test that a second get within the TTL reuses the same set."""
        first = await cache.get()
        clock.now += 299
        second = await cache.get()

        assert first is second
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_get_refetches_after_ttl(
        self, cache: NarratorCache, fetch: AsyncMock, clock: FakeClock
    ) -> None:
        """Test that an expired set is fetched again."""
        await cache.get()
        clock.now += 301
        await cache.get()

        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_fetch(self, clock: FakeClock) -> None:
        """Test single-flight: concurrent callers get the identical set object."""
        release = asyncio.Event()
        calls = 0

        async def slow_fetch() -> list[str]:
            nonlocal calls
            calls += 1
            await release.wait()
            return ["Japanese Female 1"]

        cache = NarratorCache(slow_fetch, clock=clock)
        first = asyncio.create_task(cache.get())
        second = asyncio.create_task(cache.get())
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second)

        assert results[0] is results[1]
        assert calls == 1

    @pytest.mark.asyncio
    async def test_refresh_forces_refetch(
        self, cache: NarratorCache, fetch: AsyncMock
    ) -> None:
        """Test that refresh ignores a TTL-valid set."""
        await cache.get()
        fetch.return_value = ["Japanese Female 2"]

        await cache.refresh()
        names = await cache.get()

        assert names == frozenset({"Japanese Female 2"})
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_refresh_joins_fetch_in_flight(self, clock: FakeClock) -> None:
        """Test that refresh during a fetch never starts a second one."""
        release = asyncio.Event()
        calls = 0
        active = 0
        peak = 0

        async def slow_fetch() -> list[str]:
            nonlocal calls, active, peak
            calls += 1
            active += 1
            peak = max(peak, active)
            try:
                await release.wait()
                return ["Japanese Female 1"]
            finally:
                active -= 1

        cache = NarratorCache(slow_fetch, clock=clock)
        pending = asyncio.create_task(cache.get())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        refreshing = asyncio.create_task(cache.refresh())
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(pending, refreshing)

        assert peak == 1
        assert calls == 1
        assert results[0] is results[1]
        assert await cache.get() is results[0]

    @pytest.mark.asyncio
    async def test_clear_invalidates(self, cache: NarratorCache, fetch: AsyncMock) -> None:
        """Test that clear makes the next get fetch."""
        await cache.get()
        cache.clear()
        await cache.get()

        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_returns_empty_and_retries(
        self, cache: NarratorCache, fetch: AsyncMock
    ) -> None:
        """Test that a failed fetch is not cached."""
        fetch.side_effect = ProcessFailed(1, "engine crashed")

        assert await cache.get() == frozenset()
        assert cache.last_fetch_failed

        fetch.side_effect = None
        fetch.return_value = ["Japanese Female 1"]

        assert await cache.get() == frozenset({"Japanese Female 1"})
        assert not cache.last_fetch_failed
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_does_not_keep_stale_set(
        self, cache: NarratorCache, fetch: AsyncMock
    ) -> None:
        """Test that a failed refresh drops the previous set."""
        await cache.get()
        fetch.side_effect = RuntimeError("boom")

        assert await cache.refresh() == frozenset()

    @pytest.mark.asyncio
    async def test_blank_and_padded_names_normalised(self, clock: FakeClock) -> None:
        """Test that blank entries are dropped and names stripped."""
        cache = NarratorCache(AsyncMock(return_value=["  A  ", "", "B"]), clock=clock)
        assert await cache.get() == frozenset({"A", "B"})

    @pytest.mark.asyncio
    async def test_is_valid(self, cache: NarratorCache) -> None:
        """Test membership checks."""
        assert await cache.is_valid("Japanese Female 1")
        assert not await cache.is_valid("Nobody")

    @pytest.mark.asyncio
    async def test_is_valid_absent_name(self, cache: NarratorCache, fetch: AsyncMock) -> None:
        """Test that an absent name is valid without fetching."""
        assert await cache.is_valid(None)
        assert await cache.is_valid("")
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_is_valid_when_list_unavailable(
        self, cache: NarratorCache, fetch: AsyncMock
    ) -> None:
        """Test that names are not rejected while the list cannot be fetched."""
        fetch.side_effect = ProcessFailed(1, "engine crashed")
        assert await cache.is_valid("Anyone")

    @pytest.mark.asyncio
    async def test_engine_with_no_narrators_rejects(self, clock: FakeClock) -> None:
        """Test that a successful but empty list rejects every name."""
        cache = NarratorCache(AsyncMock(return_value=[]), clock=clock)
        assert not await cache.is_valid("Anyone")

    @pytest.mark.asyncio
    async def test_clear_during_fetch_discards_result(self, clock: FakeClock) -> None:
        """Test that an abandoned fetch does not populate the cache."""
        release = asyncio.Event()
        results = [["Old"], ["New"]]

        async def fetch() -> list[str]:
            names = results.pop(0)
            if names == ["Old"]:
                await release.wait()
            return names

        cache = NarratorCache(fetch, clock=clock)
        abandoned = asyncio.create_task(cache.get())
        await asyncio.sleep(0)
        cache.clear()
        release.set()
        assert await abandoned == frozenset({"Old"})

        assert await cache.get() == frozenset({"New"})
