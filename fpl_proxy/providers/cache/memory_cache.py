"""In-memory response cache backed by ``cachetools.LRUCache``.

Capacity is bounded by entry count; once full, the least-recently-used entry
is evicted regardless of its age.  Freshness is checked lazily on read, so
no background sweep is needed for correctness; :meth:`purge_expired` exists
to bound memory between reads.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from cachetools import LRUCache

from fpl_proxy.interfaces.cache_provider import ICacheProvider
from fpl_proxy.models.cache import CacheEntry
from fpl_proxy.utils.logging import get_logger

logger = get_logger(__name__)


class MemoryCacheProvider(ICacheProvider):
    """Process-local TTL cache with a stale-read horizon.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    stale_horizon:
        Default seconds an entry stays readable through :meth:`get_stale`.
    clock:
        Zero-argument callable returning seconds.  Tests pass a fake clock.
    """

    def __init__(
        self,
        max_size: int = 1000,
        stale_horizon: float = 12 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stale_horizon = stale_horizon
        self._clock = clock
        self._cache: LRUCache[str, CacheEntry] = LRUCache(maxsize=max_size)

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def put(self, key: str, value: Any, ttl: float) -> None:
        self._cache[key] = CacheEntry(key=key, stored_at=self._clock(), value=value, ttl=ttl)
        logger.debug("cache_set", key=key, ttl=ttl, size=len(self._cache))

    async def get_fresh(self, key: str) -> Any | None:
        entry = self._lookup(key, None)
        if entry is None or not entry.is_fresh(self._clock()):
            logger.debug("cache_miss", key=key)
            return None
        logger.debug("cache_hit", key=key)
        return entry.value

    async def get_stale(self, key: str, stale_horizon: float | None = None) -> Any | None:
        horizon = self._stale_horizon if stale_horizon is None else stale_horizon
        entry = self._lookup(key, horizon)
        if entry is None:
            return None
        logger.debug("cache_stale_hit", key=key, age_s=round(entry.age(self._clock()), 1))
        return entry.value

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            key
            for key, entry in list(self._cache.items())
            if not entry.within_horizon(now, self._retention(entry))
        ]
        for key in expired:
            self._cache.pop(key, None)
        if expired:
            logger.info("cache_purged", removed=len(expired), remaining=len(self._cache))
        return len(expired)

    def __len__(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _lookup(self, key: str, horizon: float | None) -> CacheEntry | None:
        """Return the entry for *key* unless it is past *horizon*.

        An entry older than every horizon that could still read it is dropped
        here, which keeps memory bounded when the periodic purge is disabled.
        ``horizon=None`` skips the age filter and leaves the freshness check
        to the caller.
        """
        entry = self._cache.get(key)
        if entry is None:
            return None
        now = self._clock()
        if not entry.within_horizon(now, self._retention(entry, horizon)):
            self._cache.pop(key, None)
            return None
        if horizon is not None and not entry.within_horizon(now, horizon):
            return None
        return entry

    def _retention(self, entry: CacheEntry, horizon: float | None = None) -> float:
        """Age past which *entry* is of no use to any reader."""
        retention = max(self._stale_horizon, entry.ttl)
        if horizon is not None:
            retention = max(retention, horizon)
        return retention
