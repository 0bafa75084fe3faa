"""Abstract base class for response cache providers.

Defines the contract the proxy pipeline relies on: a fresh read that honours
each entry's TTL, and a stale read that tolerates older entries so the
pipeline can keep serving when upstream is down.  Implementations may keep
entries in process memory, Redis, or anywhere else; the pipeline only talks
to this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Contract for TTL caches with a stale-read fallback.

    All operations are async so that a network-backed store could be
    dropped in without blocking the event loop.  None of them raise:
    absence is reported as ``None``.
    """

    @abstractmethod
    async def put(self, key: str, value: Any, ttl: float) -> None:
        """Store *value* under *key*, replacing any previous entry.

        Parameters
        ----------
        key:
            The cache key (normalized outbound URL).
        value:
            The payload to store.
        ttl:
            Seconds the entry stays fresh.  It may outlive its ttl for stale
            reads until the provider's stale horizon.
        """

    @abstractmethod
    async def get_fresh(self, key: str) -> Any | None:
        """Return the value for *key* if it was stored no more than ttl seconds ago.

        Reading does not extend the entry's ttl.
        """

    @abstractmethod
    async def get_stale(self, key: str, stale_horizon: float | None = None) -> Any | None:
        """Return the value for *key* if it is younger than *stale_horizon* seconds.

        Independent of the entry's own ttl.  ``None`` for *stale_horizon*
        means the provider's configured default.
        """

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop every entry older than the stale horizon and return how many went."""
