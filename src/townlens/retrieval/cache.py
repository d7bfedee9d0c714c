"""TTL response cache with single-flight fetches.

Entries are keyed by ``(dataset name, geography code)``. Concurrent callers
asking for the same missing key share one upstream fetch. Each caller
awaits the shared task through ``asyncio.shield``, so one caller's
cancellation leaves the fetch running for the others; the fetch itself is
cancelled only when its last waiter goes away. Failures are not cached.
Expired entries are dropped on every miss, so the cache holds at most the
keys requested within the longest TTL.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from townlens.core.types import CacheEntry

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


@dataclass
class _Flight:
    task: asyncio.Future
    waiters: int = 0


class ResponseCache:
    """In-memory cache shared by every client in the process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._inflight: dict[CacheKey, _Flight] = {}
        self.hits = 0
        self.misses = 0
        self.joins = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return self.peek(key) is not None

    def peek(self, key: CacheKey) -> CacheEntry | None:
        """Return the fresh entry for ``key`` without fetching."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry

    def in_flight(self, key: CacheKey) -> bool:
        return key in self._inflight

    async def get_or_fetch(
        self,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: float,
    ) -> Any:
        entry = self._entries.get(key)
        if entry is not None:
            if entry.is_fresh(self._clock()):
                self.hits += 1
                logger.debug("Cache hit: %s/%s", *key)
                return entry.value
            del self._entries[key]
            logger.debug("Cache entry expired: %s/%s", *key)

        flight = self._inflight.get(key)
        if flight is None:
            self.misses += 1
            purged = self.purge_expired()
            if purged:
                logger.debug("Purged %d expired cache entries", purged)
            flight = _Flight(task=asyncio.ensure_future(self._fill(key, fetcher, ttl)))
            self._inflight[key] = flight
        else:
            self.joins += 1
            logger.debug("Joining in-flight fetch: %s/%s", *key)

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                logger.debug("Last waiter gone, cancelling fetch: %s/%s", *key)
                flight.task.cancel()
                # A task cancelled before it starts never reaches _fill's cleanup
                if self._inflight.get(key) is flight:
                    del self._inflight[key]

    async def _fill(self, key: CacheKey, fetcher, ttl: float) -> Any:
        try:
            value = await fetcher()
        finally:
            flight = self._inflight.get(key)
            if flight is not None and flight.task is asyncio.current_task():
                del self._inflight[key]
        self._entries[key] = CacheEntry(key=key, value=value, fetched_at=self._clock(), ttl=ttl)
        return value

    def invalidate(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = self.misses = self.joins = 0


_shared_cache: ResponseCache | None = None


def get_shared_cache() -> ResponseCache:
    """Process-wide cache instance, created on first use."""
    global _shared_cache
    if _shared_cache is None:
        _shared_cache = ResponseCache()
    return _shared_cache


def clear_cache() -> None:
    """Drop the shared cache (tests, or after a catalog change)."""
    global _shared_cache
    _shared_cache = None
