"""Hover-driven speculative prefetch with per-category TTL caches.

Hovering an item for longer than the debounce window fetches its details
(comments, checks) in the background so opening it feels instant. Each
category keeps a bounded map of item id -> insertion time; entries expire
lazily on read.
"""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MAX_CACHE_SIZE = 100
CACHE_TTL_SECONDS = 5 * 60
HOVER_DELAY_SECONDS = 0.15
EVICTION_FRACTION = 0.2

Fetcher = Callable[[str], Awaitable[object]]


@dataclass
class CacheEntry:
    key: str
    inserted_at: float


class TTLCache:
    """Bounded id -> timestamp map with lazy expiry and batched eviction."""

    def __init__(
        self,
        max_size: int = MAX_CACHE_SIZE,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def has(self, key: str) -> bool:
        """Check for a valid entry, deleting it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() - entry.inserted_at > self.ttl:
            del self._entries[key]
            return False
        return True

    def add(self, key: str) -> None:
        """Insert or refresh ``key``, evicting the oldest batch when full."""
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()
        self._entries[key] = CacheEntry(key=key, inserted_at=self._clock())

    def _evict_oldest(self) -> None:
        count = math.ceil(self.max_size * EVICTION_FRACTION)
        oldest = sorted(self._entries.values(), key=lambda entry: entry.inserted_at)[:count]
        for entry in oldest:
            del self._entries[entry.key]
        logger.debug("Evicted %d oldest prefetch entries", len(oldest))

    def clear(self) -> None:
        self._entries.clear()


class PrefetchCache:
    """Debounced hover prefetcher backed by one :class:`TTLCache` per category.

    ``fetchers`` maps a category name (e.g. ``"comments"``) to a coroutine
    function taking an item id. Hints passed to :meth:`on_hover_start` say
    which categories the item actually has data for.
    """

    def __init__(
        self,
        fetchers: Mapping[str, Fetcher],
        *,
        enabled: Callable[[], bool] = lambda: True,
        hover_delay: float = HOVER_DELAY_SECONDS,
        max_size: int = MAX_CACHE_SIZE,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetchers = dict(fetchers)
        self._enabled = enabled
        self.hover_delay = hover_delay
        self._caches = {
            category: TTLCache(max_size=max_size, ttl=ttl, clock=clock)
            for category in self._fetchers
        }
        self._hover_timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self.prefetching = False

    def cache(self, category: str) -> TTLCache:
        try:
            return self._caches[category]
        except KeyError:
            raise ValueError(f"Unknown prefetch category: {category}") from None

    def on_hover_start(self, item_id: str, hints: Mapping[str, bool]) -> None:
        """Start (or restart) the hover debounce for ``item_id``."""
        if not self._enabled():
            return
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._hover_timer = loop.call_later(self.hover_delay, self._on_hover_settled, item_id, dict(hints))

    def on_hover_end(self) -> None:
        """Cancel any pending prefetch. Fetches already started keep running."""
        self._cancel_timer()

    def is_cached(self, item_id: str, category: str) -> bool:
        return self.cache(category).has(item_id)

    def clear(self) -> None:
        for cache in self._caches.values():
            cache.clear()

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _cancel_timer(self) -> None:
        if self._hover_timer is not None:
            self._hover_timer.cancel()
            self._hover_timer = None

    def _on_hover_settled(self, item_id: str, hints: dict[str, bool]) -> None:
        self._hover_timer = None
        task = asyncio.ensure_future(self.prefetch(item_id, hints))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def prefetch(self, item_id: str, hints: Mapping[str, bool]) -> None:
        """Fetch every hinted category that isn't validly cached, concurrently."""
        pending = [
            self._fetch_one(category, item_id)
            for category in self._fetchers
            if hints.get(category) and not self.is_cached(item_id, category)
        ]
        if not pending:
            return

        self.prefetching = True
        try:
            await asyncio.gather(*pending)
        finally:
            self.prefetching = False

    async def _fetch_one(self, category: str, item_id: str) -> None:
        try:
            await self._fetchers[category](item_id)
        except Exception as e:
            logger.warning("Prefetch of %s for %s failed: %s", category, item_id, e)
            return
        self._caches[category].add(item_id)
