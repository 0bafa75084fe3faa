"""FPL proxy FastAPI application entry point.

Builds the process-wide collaborators once (HTTP client, response cache,
upstream scheduler, fetcher, pipeline, aggregate service), stores them on
``app.state`` for the routes to resolve, and tears them down on shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from fpl_proxy import __version__
from fpl_proxy.api.middleware import (
    ErrorHandlingMiddleware,
    PerClientLimiter,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    register_exception_handlers,
)
from fpl_proxy.api.routes import router as api_router
from fpl_proxy.config.loader import load_structural_defaults
from fpl_proxy.config.settings import Settings
from fpl_proxy.interfaces.cache_provider import ICacheProvider
from fpl_proxy.pipeline.orchestrator import ProxyPipeline
from fpl_proxy.pipeline.resource_policy import ResourcePolicyResolver
from fpl_proxy.providers.cache.memory_cache import MemoryCacheProvider
from fpl_proxy.providers.upstream.fpl_fetcher import FplFetcher
from fpl_proxy.services.aggregate_service import AggregateService
from fpl_proxy.utils.concurrency import UpstreamScheduler
from fpl_proxy.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Dependency assembly
# ---------------------------------------------------------------------------


def _build_all(
    app_settings: Settings,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Construct every shared component for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    ``http_transport`` lets tests route upstream calls to a stub.
    """
    http_client = httpx.AsyncClient(
        transport=http_transport,
        timeout=app_settings.fetch_timeout_s,
        follow_redirects=True,
    )

    cache = MemoryCacheProvider(
        max_size=app_settings.cache_max_entries,
        stale_horizon=app_settings.stale_horizon_s,
    )
    scheduler = UpstreamScheduler(
        max_concurrent=app_settings.max_concurrent_upstream,
        spacing_ms=app_settings.dispatch_spacing_ms,
        max_queue_size=app_settings.max_queue_size,
    )
    fetcher = FplFetcher(
        http_client=http_client,
        attempts=app_settings.fetch_attempts,
        timeout_s=app_settings.fetch_timeout_s,
        backoff_response_ms=app_settings.backoff_response_ms,
        backoff_transport_ms=app_settings.backoff_transport_ms,
        jitter_ms=app_settings.backoff_jitter_ms,
    )
    policies = ResourcePolicyResolver(
        app_settings,
        structural_defaults=load_structural_defaults(app_settings.structural_defaults_path),
    )
    pipeline = ProxyPipeline(
        cache=cache,
        scheduler=scheduler,
        fetcher=fetcher,
        policies=policies,
        base_url=app_settings.upstream_base_url,
        stale_horizon=app_settings.stale_horizon_s,
        coalesce_inflight=app_settings.coalesce_inflight,
    )
    aggregate_service = AggregateService(pipeline, max_ids=app_settings.aggregate_max_ids)

    return {
        "http_client": http_client,
        "cache": cache,
        "scheduler": scheduler,
        "pipeline": pipeline,
        "aggregate_service": aggregate_service,
    }


async def _purge_loop(cache: ICacheProvider, interval_s: float) -> None:
    """Drop entries past the stale horizon every *interval_s* seconds."""
    while True:
        await asyncio.sleep(interval_s)
        await cache.purge_expired()


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application."""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Build shared components on startup, release them on shutdown."""
        components = _build_all(app_settings, http_transport)
        for key, value in components.items():
            setattr(application.state, key, value)

        purge_task: asyncio.Task[None] | None = None
        if app_settings.cache_purge_interval_s > 0:
            purge_task = asyncio.create_task(
                _purge_loop(components["cache"], app_settings.cache_purge_interval_s)
            )

        _logger.info(
            "app_startup",
            version=__version__,
            environment=app_settings.app_env,
            upstream=app_settings.upstream_base_url,
            max_concurrent=app_settings.max_concurrent_upstream,
            spacing_ms=app_settings.dispatch_spacing_ms,
        )

        yield

        if purge_task is not None:
            purge_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await purge_task
        await components["scheduler"].aclose()
        await components["http_client"].aclose()
        _logger.info("app_shutdown", message="HTTP client closed")

    application = FastAPI(
        title="FPL proxy",
        version=__version__,
        description=(
            "Caching reverse proxy for the Fantasy Premier League API with "
            "bounded upstream concurrency, retries and stale-data fallback."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    if app_settings.rate_limit_per_minute > 0:
        application.add_middleware(
            RateLimitMiddleware,
            limiter=PerClientLimiter(limit=app_settings.rate_limit_per_minute, window_s=60.0),
            trust_proxy_headers=app_settings.trust_proxy_headers,
        )
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=app_settings.get_allowed_origins())
    register_exception_handlers(application)

    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def run() -> None:
    """Serve the app with uvicorn using the module-level settings."""
    uvicorn.run(
        "fpl_proxy.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    run()
