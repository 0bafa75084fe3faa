"""Cache entry models.

Entries are frozen: a refresh replaces the whole entry under its key, it
never edits one in place.  Timestamps are readings of the cache's clock
(``time.monotonic`` in production), not wall-clock datetimes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class CachedPayload(BaseModel):
    """A successful upstream body plus the validators worth forwarding."""

    model_config = ConfigDict(frozen=True)

    body: Any
    text_body: bool = False
    content_type: str | None = None
    etag: str | None = None
    last_modified: str | None = None


class CacheEntry(BaseModel):
    """One stored upstream response, keyed by its normalized outbound URL."""

    model_config = ConfigDict(frozen=True)

    key: str
    stored_at: float
    value: Any
    ttl: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) <= self.ttl

    def within_horizon(self, now: float, horizon: float) -> bool:
        return self.age(now) <= horizon
