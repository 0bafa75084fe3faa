"""Shared pytest fixtures for the FPL proxy test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from fpl_proxy.config.settings import Settings
from fpl_proxy.pipeline.orchestrator import ProxyPipeline
from fpl_proxy.pipeline.resource_policy import ResourcePolicyResolver
from fpl_proxy.providers.cache.memory_cache import MemoryCacheProvider
from fpl_proxy.providers.upstream.fpl_fetcher import FplFetcher
from fpl_proxy.utils.concurrency import UpstreamScheduler

BASE_URL = "https://fantasy.premierleague.com/api"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings that ignore the environment and any .env file.

    Retries, backoff and spacing default to zero so tests run instantly;
    pass keyword overrides for anything a test cares about.
    """

    def _factory(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "fetch_attempts": 3,
            "backoff_response_ms": 0,
            "backoff_transport_ms": 0,
            "backoff_jitter_ms": 0,
            "dispatch_spacing_ms": 0,
            "cache_purge_interval_s": 0,
            "rate_limit_per_minute": 0,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _factory


class UpstreamStub:
    """Records upstream calls and answers them from a path -> handler table.

    A handler is either an ``httpx.Response`` or a callable taking the
    ``httpx.Request``.  Unknown paths answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/")
        handler = self.routes.get(path)
        if handler is None:
            return httpx.Response(404, json={"detail": "Not found."})
        if callable(handler):
            return handler(request)
        # A sent response is bound to its request; hand out a copy each time.
        return httpx.Response(handler.status_code, headers=handler.headers, content=handler.content)

    def calls_to(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path.removeprefix("/api/") == path)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def build_pipeline(
    make_settings: Callable[..., Settings],
    upstream: UpstreamStub,
    clock: FakeClock,
):
    """Return a factory that wires a real pipeline around the upstream stub.

    The factory returns ``(pipeline, cache)``; the cache runs on the fake
    clock so tests can age entries without sleeping.
    """

    def _factory(**overrides: Any) -> tuple[ProxyPipeline, MemoryCacheProvider]:
        settings = make_settings(**overrides)
        client = httpx.AsyncClient(transport=upstream.transport)
        cache = MemoryCacheProvider(
            max_size=settings.cache_max_entries,
            stale_horizon=settings.stale_horizon_s,
            clock=clock,
        )
        scheduler = UpstreamScheduler(
            max_concurrent=settings.max_concurrent_upstream,
            spacing_ms=settings.dispatch_spacing_ms,
            max_queue_size=settings.max_queue_size,
        )
        fetcher = FplFetcher(
            http_client=client,
            attempts=settings.fetch_attempts,
            backoff_response_ms=settings.backoff_response_ms,
            backoff_transport_ms=settings.backoff_transport_ms,
            jitter_ms=settings.backoff_jitter_ms,
        )
        pipeline = ProxyPipeline(
            cache=cache,
            scheduler=scheduler,
            fetcher=fetcher,
            policies=ResourcePolicyResolver(settings),
            base_url=BASE_URL,
            stale_horizon=settings.stale_horizon_s,
            coalesce_inflight=settings.coalesce_inflight,
        )
        return pipeline, cache

    return _factory
