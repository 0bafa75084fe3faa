"""Fan-out aggregation across many FPL entry ids.

The summary and history endpoints apply the ordinary proxy pipeline to one
upstream URL per id, concurrently, and report each id separately.  One id
failing (404, upstream outage with nothing cached, full queue) never affects
the others; concurrency towards upstream stays bounded because every id's
fetch still goes through the shared scheduler.
"""

from __future__ import annotations

from typing import Any

from fpl_proxy.models.aggregate import HistoryResult, SummaryResult
from fpl_proxy.models.outcome import OutcomeSource, ProxyOutcome
from fpl_proxy.pipeline.orchestrator import ProxyPipeline
from fpl_proxy.utils.concurrency import gather_tagged
from fpl_proxy.utils.errors import FplProxyError, InvalidRequestError
from fpl_proxy.utils.logging import get_logger

_FALLBACK_LABELS = {
    OutcomeSource.STALE: "stale",
    OutcomeSource.STRUCTURAL: "structural",
}


def parse_ids(raw: str | None, max_ids: int) -> list[int]:
    """Parse ``"1, 2,,3"`` into ``[1, 2, 3]``.

    Blank items are skipped and duplicates dropped, keeping first-seen order.

    Raises
    ------
    InvalidRequestError
        If *raw* is missing or empty, holds a non-integer or non-positive
        item, or lists more than *max_ids* distinct ids.
    """
    if raw is None or not raw.strip():
        raise InvalidRequestError("Query parameter 'ids' is required")

    ids: list[int] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            value = int(item)
        except ValueError:
            raise InvalidRequestError(f"Invalid id {item!r}: expected an integer") from None
        if value < 1:
            raise InvalidRequestError(f"Invalid id {value}: must be positive")
        if value not in ids:
            ids.append(value)

    if not ids:
        raise InvalidRequestError("Query parameter 'ids' is required")
    if len(ids) > max_ids:
        raise InvalidRequestError(f"At most {max_ids} ids per request (got {len(ids)})")
    return ids


def parse_gameweek(raw: str | None) -> int:
    """Parse the ``gw`` query parameter into a positive integer."""
    if raw is None or not raw.strip():
        raise InvalidRequestError("Query parameter 'gw' is required")
    try:
        gameweek = int(raw.strip())
    except ValueError:
        raise InvalidRequestError(f"Invalid gw {raw!r}: expected an integer") from None
    if gameweek < 1:
        raise InvalidRequestError(f"Invalid gw {gameweek}: must be positive")
    return gameweek


class AggregateService:
    """Builds composite views by resolving one pipeline request per id."""

    def __init__(self, pipeline: ProxyPipeline, max_ids: int = 50) -> None:
        self._pipeline = pipeline
        self._max_ids = max_ids
        self._logger = get_logger(__name__)

    @property
    def max_ids(self) -> int:
        return self._max_ids

    async def summary(self, ids: list[int]) -> list[SummaryResult]:
        """Return ``entry/<id>/`` for every id, in the order given."""
        outcomes = await gather_tagged(
            ids,
            lambda entry_id: self._pipeline.resolve(f"entry/{entry_id}/"),
            logger=self._logger,
            error_msg="summary_item_failed",
        )
        results: list[SummaryResult] = []
        for entry_id, outcome in outcomes:
            if isinstance(outcome, BaseException):
                results.append(
                    SummaryResult(id=entry_id, ok=False, status=_status_for_exception(outcome))
                )
            elif outcome.ok:
                results.append(
                    SummaryResult(
                        id=entry_id,
                        ok=True,
                        data=outcome.body,
                        stale=outcome.stale,
                        fallback=_FALLBACK_LABELS.get(outcome.source),
                    )
                )
            else:
                results.append(
                    SummaryResult(id=entry_id, ok=False, status=_failed_status(outcome))
                )
        return results

    async def history(self, ids: list[int], gameweek: int) -> list[HistoryResult]:
        """Return each entry's points for *gameweek*, read from its picks."""
        outcomes = await gather_tagged(
            ids,
            lambda entry_id: self._pipeline.resolve(f"entry/{entry_id}/event/{gameweek}/picks/"),
            logger=self._logger,
            error_msg="history_item_failed",
        )
        results: list[HistoryResult] = []
        for entry_id, outcome in outcomes:
            if isinstance(outcome, BaseException):
                results.append(
                    HistoryResult(id=entry_id, ok=False, status=_status_for_exception(outcome))
                )
            elif outcome.ok:
                results.append(
                    HistoryResult(
                        id=entry_id,
                        ok=True,
                        points=_extract_points(outcome.body),
                        raw=outcome.body,
                        stale=outcome.stale,
                        fallback=_FALLBACK_LABELS.get(outcome.source),
                    )
                )
            else:
                results.append(
                    HistoryResult(id=entry_id, ok=False, status=_failed_status(outcome))
                )
        return results


def _extract_points(body: Any) -> int | None:
    """Read ``entry_history.points`` from a picks payload, if present."""
    if not isinstance(body, dict):
        return None
    entry_history = body.get("entry_history")
    if not isinstance(entry_history, dict):
        return None
    points = entry_history.get("points")
    return points if isinstance(points, int) else None


def _failed_status(outcome: ProxyOutcome) -> int:
    return outcome.upstream_status or outcome.status_code


def _status_for_exception(exc: BaseException) -> int:
    if isinstance(exc, FplProxyError):
        return exc.status_code
    return 500
