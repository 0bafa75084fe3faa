"""The pipeline's final answer for one proxied request."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OutcomeSource(str, Enum):  # noqa: UP042
    """Where the body of a :class:`ProxyOutcome` came from."""

    CACHE = "CACHE"            # fresh cache hit, no upstream call
    UPSTREAM = "UPSTREAM"      # live upstream response (success or passthrough)
    STALE = "STALE"            # expired cache entry served after upstream failed
    STRUCTURAL = "STRUCTURAL"  # fabricated empty shape, nothing cached
    ERROR = "ERROR"            # synthesized error body


class ProxyOutcome(BaseModel):
    """Status, body and headers the HTTP layer should send back."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: Any = None
    text_body: bool = False
    headers: dict[str, str] = Field(default_factory=dict)
    source: OutcomeSource
    content_type: str | None = None
    upstream_status: int | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def stale(self) -> bool:
        return self.source is OutcomeSource.STALE
