"""FastAPI routes for the FPL proxy.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                         Method     Description
# ─────────────────────────────────────────────────────────────────────
# /healthz                         GET        Liveness probe
# /readyz                          GET        Readiness probe
# /api/aggregate/summary?ids=      GET        entry/<id>/ for many ids
# /api/aggregate/history?ids=&gw=  GET        gameweek points for many ids
# /api/<upstream-path>             GET/HEAD   Cached proxy to the FPL API
# /api/<upstream-path>             other      405 (rejected by the pipeline)
#
# The aggregate routes are registered before the catch-all so they win
# the match for their exact paths.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from fpl_proxy.api.schemas import HealthResponse, HistoryResponse, ReadyResponse, SummaryResponse
from fpl_proxy.models.outcome import ProxyOutcome
from fpl_proxy.pipeline.orchestrator import ProxyPipeline
from fpl_proxy.services.aggregate_service import AggregateService, parse_gameweek, parse_ids
from fpl_proxy.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter()

# Every verb is routed to the pipeline so that it, not the router, rejects
# the unsafe ones before touching cache or scheduler.
_PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request) -> ProxyPipeline:
    return request.app.state.pipeline


def _get_aggregate_service(request: Request) -> AggregateService:
    return request.app.state.aggregate_service


PipelineDep = Annotated[ProxyPipeline, Depends(_get_pipeline)]
AggregateDep = Annotated[AggregateService, Depends(_get_aggregate_service)]


def render_outcome(outcome: ProxyOutcome) -> Response:
    """Convert a pipeline outcome into a Starlette response.

    Decoded JSON bodies are re-serialized whatever their Python type, so a
    bare JSON string stays quoted.  Raw text bodies are sent as-is.  Either
    way upstream's content type is kept when there is one.
    """
    if outcome.body is None:
        return Response(status_code=outcome.status_code, headers=outcome.headers)
    if outcome.text_body:
        return Response(
            content=outcome.body,
            status_code=outcome.status_code,
            headers=outcome.headers,
            media_type=outcome.content_type or "text/plain",
        )
    return JSONResponse(
        content=outcome.body,
        status_code=outcome.status_code,
        headers=outcome.headers,
        media_type=outcome.content_type or JSONResponse.media_type,
    )


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------


@router.api_route("/healthz", methods=["GET", "HEAD"], response_model=HealthResponse)
async def healthz() -> HealthResponse:
    return HealthResponse(ok=True)


@router.api_route("/readyz", methods=["GET", "HEAD"], response_model=ReadyResponse)
async def readyz() -> ReadyResponse:
    return ReadyResponse(ready=True)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@router.api_route(
    "/api/aggregate/summary",
    methods=["GET", "HEAD"],
    response_model=SummaryResponse,
    summary="Entry summaries for several ids",
)
async def aggregate_summary(
    aggregate: AggregateDep,
    ids: Annotated[str | None, Query(description="Comma-separated entry ids")] = None,
) -> JSONResponse:
    """Resolve ``entry/<id>/`` for every id; one failure never blocks the rest."""
    entry_ids = parse_ids(ids, aggregate.max_ids)
    _logger.debug("aggregate_summary", ids=len(entry_ids))
    results = await aggregate.summary(entry_ids)
    return JSONResponse(content={"results": [result.to_payload() for result in results]})


@router.api_route(
    "/api/aggregate/history",
    methods=["GET", "HEAD"],
    response_model=HistoryResponse,
    summary="Gameweek points for several ids",
)
async def aggregate_history(
    aggregate: AggregateDep,
    ids: Annotated[str | None, Query(description="Comma-separated entry ids")] = None,
    gw: Annotated[str | None, Query(description="Gameweek number")] = None,
) -> JSONResponse:
    """Resolve each entry's picks for gameweek *gw* and report its points."""
    entry_ids = parse_ids(ids, aggregate.max_ids)
    gameweek = parse_gameweek(gw)
    _logger.debug("aggregate_history", ids=len(entry_ids), gw=gameweek)
    results = await aggregate.history(entry_ids, gameweek)
    return JSONResponse(
        content={"results": [result.to_payload() for result in results], "gw": gameweek}
    )


# ---------------------------------------------------------------------------
# Catch-all proxy
# ---------------------------------------------------------------------------


@router.api_route("/api/{upstream_path:path}", methods=_PROXY_METHODS, include_in_schema=False)
async def proxy(upstream_path: str, request: Request, pipeline: PipelineDep) -> Response:
    """Forward ``/api/<upstream_path>`` through the cache/scheduler pipeline."""
    outcome = await pipeline.handle(
        request.method,
        upstream_path,
        request.query_params.multi_items(),
    )
    return render_outcome(outcome)
