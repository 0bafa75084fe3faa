"""Per-id results of the aggregate endpoints.

Each id is resolved through the proxy pipeline on its own, so every result
carries its own success flag and, when degraded, which fallback produced it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class SummaryResult(BaseModel):
    """One entry's summary (``entry/<id>/``)."""

    model_config = ConfigDict(frozen=True)

    id: int
    ok: bool
    data: Any = None
    status: int | None = None
    stale: bool = False
    fallback: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "ok": self.ok}
        if self.ok:
            payload["data"] = self.data
        else:
            payload["status"] = self.status
        if self.stale:
            payload["stale"] = True
        if self.fallback:
            payload["fallback"] = self.fallback
        return payload


class HistoryResult(BaseModel):
    """One entry's gameweek points (``entry/<id>/event/<gw>/picks/``)."""

    model_config = ConfigDict(frozen=True)

    id: int
    ok: bool
    points: int | None = None
    raw: Any = None
    status: int | None = None
    stale: bool = False
    fallback: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "ok": self.ok,
            "points": self.points,
            "raw": self.raw,
        }
        if not self.ok:
            payload["status"] = self.status
        if self.stale:
            payload["stale"] = True
        if self.fallback:
            payload["fallback"] = self.fallback
        return payload
