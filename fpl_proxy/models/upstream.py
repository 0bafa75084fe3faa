"""Models describing calls made to the upstream FPL API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Response headers copied from upstream into the cache and the client reply.
FORWARDED_HEADERS: tuple[str, ...] = ("content-type", "etag", "last-modified")


class FetchAttempt(BaseModel):
    """A single HTTP call inside one logical fetch.

    Either ``status_code`` or ``error`` is set, never both.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    header_set: str  # "full" or "minimal"
    status_code: int | None = None
    error: str | None = None
    elapsed_ms: float = 0.0


class UpstreamResponse(BaseModel):
    """The response the fetcher settled on after its attempts."""

    model_config = ConfigDict(frozen=True)

    url: str
    status_code: int
    body: Any = None
    # True when the body is raw text because it did not parse as JSON.
    text_body: bool = False
    headers: dict[str, str] = Field(default_factory=dict)
    attempts: list[FetchAttempt] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def etag(self) -> str | None:
        return self.headers.get("etag")

    @property
    def last_modified(self) -> str | None:
        return self.headers.get("last-modified")
