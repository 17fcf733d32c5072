"""Tests for hover prefetch and the TTL cache."""

import asyncio

import pytest
from conftest import FakeClock

from prwatch.cache import CACHE_TTL_SECONDS, PrefetchCache, TTLCache


class RecordingFetcher:
    """Fetcher coroutine that records item ids."""

    def __init__(self, error: Exception | None = None) -> None:
        self.fetched: list[str] = []
        self.error = error

    async def __call__(self, item_id: str) -> None:
        self.fetched.append(item_id)
        if self.error is not None:
            raise self.error


class TestTTLCache:
    """Test expiry and eviction."""

    def test_eviction_drops_oldest_fifth(self, clock: FakeClock) -> None:
        """Test inserting into a full cache evicts the oldest 20% in one batch."""
        cache = TTLCache(max_size=100, clock=clock)
        for i in range(100):
            cache.add(f"item-{i}")
            clock.advance(1)

        cache.add("item-100")

        assert len(cache) == 81
        assert all(f"item-{i}" not in cache for i in range(20))
        assert all(f"item-{i}" in cache for i in range(20, 101))

    def test_refreshing_existing_key_does_not_evict(self, clock: FakeClock) -> None:
        """Test re-adding a present key keeps the cache full."""
        cache = TTLCache(max_size=5, clock=clock)
        for i in range(5):
            cache.add(f"item-{i}")

        cache.add("item-0")

        assert len(cache) == 5

    def test_entry_expires_after_ttl(self, clock: FakeClock) -> None:
        """Test entries older than the TTL are invalid and removed on read."""
        cache = TTLCache(clock=clock)
        cache.add("item-1")

        clock.advance(CACHE_TTL_SECONDS)
        assert cache.has("item-1")

        clock.advance(1)
        assert not cache.has("item-1")
        assert "item-1" not in cache

    def test_missing_key(self, clock: FakeClock) -> None:
        """Test unknown keys are not cached."""
        assert not TTLCache(clock=clock).has("item-1")


class TestPrefetchCache:
    """Test hover debouncing and fetching."""

    def test_short_hover_does_not_fetch(self) -> None:
        """Test leaving before the delay cancels the prefetch."""
        comments = RecordingFetcher()

        async def scenario() -> None:
            prefetch = PrefetchCache({"comments": comments}, hover_delay=0.05)
            prefetch.on_hover_start("PR_1", {"comments": True})
            await asyncio.sleep(0.01)
            prefetch.on_hover_end()
            await asyncio.sleep(0.08)
            await prefetch.wait_idle()

        asyncio.run(scenario())
        assert comments.fetched == []

    def test_settled_hover_fetches_and_caches(self) -> None:
        """Test a hover past the delay fetches hinted categories."""
        comments = RecordingFetcher()
        checks = RecordingFetcher()

        async def scenario() -> PrefetchCache:
            prefetch = PrefetchCache(
                {"comments": comments, "checks": checks}, hover_delay=0.01
            )
            prefetch.on_hover_start("PR_1", {"comments": True, "checks": False})
            await asyncio.sleep(0.03)
            await prefetch.wait_idle()
            return prefetch

        prefetch = asyncio.run(scenario())
        assert comments.fetched == ["PR_1"]
        assert checks.fetched == []
        assert prefetch.is_cached("PR_1", "comments")
        assert not prefetch.is_cached("PR_1", "checks")

    def test_rehover_moves_target(self) -> None:
        """Test hovering a second item cancels the first item's prefetch."""
        comments = RecordingFetcher()

        async def scenario() -> None:
            prefetch = PrefetchCache({"comments": comments}, hover_delay=0.03)
            prefetch.on_hover_start("PR_1", {"comments": True})
            await asyncio.sleep(0.01)
            prefetch.on_hover_start("PR_2", {"comments": True})
            await asyncio.sleep(0.06)
            await prefetch.wait_idle()

        asyncio.run(scenario())
        assert comments.fetched == ["PR_2"]

    def test_cached_item_not_refetched(self) -> None:
        """Test a valid cache entry skips the fetch."""
        comments = RecordingFetcher()

        async def scenario() -> None:
            prefetch = PrefetchCache({"comments": comments})
            await prefetch.prefetch("PR_1", {"comments": True})
            await prefetch.prefetch("PR_1", {"comments": True})

        asyncio.run(scenario())
        assert comments.fetched == ["PR_1"]

    def test_failed_fetch_not_cached(self) -> None:
        """Test a failing fetch is logged and left uncached."""
        comments = RecordingFetcher(error=RuntimeError("rate limited"))

        async def scenario() -> PrefetchCache:
            prefetch = PrefetchCache({"comments": comments})
            await prefetch.prefetch("PR_1", {"comments": True})
            assert not prefetch.prefetching
            return prefetch

        prefetch = asyncio.run(scenario())
        assert not prefetch.is_cached("PR_1", "comments")

    def test_disabled_ignores_hover(self) -> None:
        """Test hovering does nothing while prefetch is disabled."""
        comments = RecordingFetcher()

        async def scenario() -> None:
            prefetch = PrefetchCache(
                {"comments": comments}, enabled=lambda: False, hover_delay=0.01
            )
            prefetch.on_hover_start("PR_1", {"comments": True})
            await asyncio.sleep(0.03)
            await prefetch.wait_idle()

        asyncio.run(scenario())
        assert comments.fetched == []

    def test_clear_empties_every_category(self) -> None:
        """Test clear() invalidates all caches."""

        async def scenario() -> PrefetchCache:
            prefetch = PrefetchCache({"comments": RecordingFetcher()})
            await prefetch.prefetch("PR_1", {"comments": True})
            return prefetch

        prefetch = asyncio.run(scenario())
        prefetch.clear()
        assert not prefetch.is_cached("PR_1", "comments")

    def test_unknown_category(self) -> None:
        """Test asking for an unknown category raises."""
        prefetch = PrefetchCache({"comments": RecordingFetcher()})
        with pytest.raises(ValueError, match="Unknown prefetch category"):
            prefetch.cache("labels")
