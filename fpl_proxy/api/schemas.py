"""Pydantic response schemas for the proxy's own endpoints.

Proxied ``/api/<path>`` responses are passed through with upstream's shape
and have no schema here.  Aggregate results are rendered by
:mod:`fpl_proxy.models.aggregate` so that optional keys are omitted rather
than sent as ``null``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness probe body."""

    ok: bool = True


class ReadyResponse(BaseModel):
    """Readiness probe body."""

    ready: bool = True


class ErrorResponse(BaseModel):
    """Structured error body used for every proxy-generated failure."""

    error: str
    details: str | None = None


class SummaryResponse(BaseModel):
    """``GET /api/aggregate/summary`` body."""

    results: list[dict[str, Any]] = Field(default_factory=list)


class HistoryResponse(BaseModel):
    """``GET /api/aggregate/history`` body."""

    results: list[dict[str, Any]] = Field(default_factory=list)
    gw: int
