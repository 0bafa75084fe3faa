"""Unit tests for ProxyPipeline: cache preference, fallbacks and coalescing."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from fpl_proxy.models.cache import CachedPayload
from fpl_proxy.models.outcome import OutcomeSource
from fpl_proxy.pipeline.orchestrator import (
    HEADER_CACHE,
    HEADER_FALLBACK,
    HEADER_STALE,
    HEADER_UPSTREAM_STATUS,
)
from fpl_proxy.utils.errors import InvalidRequestError, MethodNotAllowedError
from tests.conftest import BASE_URL, FakeClock, UpstreamStub

HISTORY = "entry/123/history/"
HISTORY_URL = f"{BASE_URL}/{HISTORY}"


class TestCachePreference:
    @pytest.mark.asyncio
    async def test_fresh_entry_is_served_without_upstream_call(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        pipeline, cache = build_pipeline()
        await cache.put(HISTORY_URL, CachedPayload(body={"current": [1]}), ttl=600)

        outcome = await pipeline.handle("GET", HISTORY)

        assert outcome.status_code == 200
        assert outcome.body == {"current": [1]}
        assert outcome.source is OutcomeSource.CACHE
        assert outcome.headers[HEADER_CACHE] == "HIT"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_miss_fetches_stores_and_then_hits(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        upstream.routes[HISTORY] = httpx.Response(
            200, json={"current": []}, headers={"ETag": '"v1"'}
        )
        pipeline, _ = build_pipeline()

        first = await pipeline.handle("GET", HISTORY)
        second = await pipeline.handle("GET", HISTORY)

        assert first.headers[HEADER_CACHE] == "MISS"
        assert first.headers["ETag"] == '"v1"'
        assert second.headers[HEADER_CACHE] == "HIT"
        assert second.headers["ETag"] == '"v1"'
        assert upstream.calls_to(HISTORY) == 1

    @pytest.mark.asyncio
    async def test_equivalent_paths_share_one_cache_entry(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        upstream.routes["fixtures/"] = httpx.Response(200, json=[])
        pipeline, _ = build_pipeline()

        await pipeline.handle("GET", "fixtures/", [("future", "1"), ("event", "3")])
        outcome = await pipeline.handle("GET", "//fixtures/", [("event", "3"), ("future", "1")])

        assert outcome.headers[HEADER_CACHE] == "HIT"
        assert len(upstream.requests) == 1
        assert str(upstream.requests[0].url).endswith("fixtures/?event=3&future=1")

    @pytest.mark.asyncio
    async def test_cache_control_follows_resource_class(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        upstream.routes["event/5/live/"] = httpx.Response(200, json={"elements": []})
        upstream.routes["bootstrap-static/"] = httpx.Response(200, json={"events": []})
        pipeline, _ = build_pipeline()

        live = await pipeline.handle("GET", "event/5/live/")
        static = await pipeline.handle("GET", "bootstrap-static/")

        assert live.headers["Cache-Control"] == "public, max-age=30"
        assert static.headers["Cache-Control"].startswith("public, max-age=60, s-maxage=3600")

    @pytest.mark.asyncio
    async def test_live_entry_expires_after_its_ttl(
        self, build_pipeline, upstream: UpstreamStub, clock: FakeClock
    ) -> None:
        upstream.routes["event/5/live/"] = httpx.Response(200, json={"elements": []})
        pipeline, _ = build_pipeline(ttl_live_s=60)

        await pipeline.handle("GET", "event/5/live/")
        clock.advance(61)
        await pipeline.handle("GET", "event/5/live/")

        assert upstream.calls_to("event/5/live/") == 2


class TestFallbacks:
    @pytest.mark.asyncio
    async def test_stale_entry_served_on_upstream_500(
        self, build_pipeline, upstream: UpstreamStub, clock: FakeClock
    ) -> None:
        pipeline, cache = build_pipeline(ttl_history_s=600, stale_horizon_s=12 * 3600)
        await cache.put(HISTORY_URL, CachedPayload(body={"current": ["old"]}), ttl=600)
        clock.advance(3600)
        upstream.routes[HISTORY] = httpx.Response(500)

        outcome = await pipeline.handle("GET", HISTORY)

        assert outcome.status_code == 200
        assert outcome.body == {"current": ["old"]}
        assert outcome.stale
        assert outcome.headers[HEADER_STALE] == "1"
        assert outcome.headers[HEADER_FALLBACK] == "stale"
        assert outcome.headers[HEADER_UPSTREAM_STATUS] == "500"
        assert outcome.headers["Cache-Control"] == "no-cache"

    @pytest.mark.asyncio
    async def test_stale_entry_served_on_transport_failure(
        self, build_pipeline, upstream: UpstreamStub, clock: FakeClock
    ) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        pipeline, cache = build_pipeline()
        await cache.put(HISTORY_URL, CachedPayload(body={"current": []}), ttl=600)
        clock.advance(7200)
        upstream.routes[HISTORY] = refuse

        outcome = await pipeline.handle("GET", HISTORY)

        assert outcome.status_code == 200
        assert outcome.headers[HEADER_UPSTREAM_STATUS] == "transport-error"

    @pytest.mark.asyncio
    async def test_502_when_upstream_fails_and_nothing_cached(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        upstream.routes[HISTORY] = httpx.Response(500, text="internal trace")
        pipeline, _ = build_pipeline()

        outcome = await pipeline.handle("GET", HISTORY)

        assert outcome.status_code == 502
        assert outcome.body["error"] == "Upstream unavailable"
        assert "internal trace" not in outcome.body["details"]
        assert outcome.headers["Cache-Control"] == "no-store"
        assert upstream.calls_to(HISTORY) == 3

    @pytest.mark.asyncio
    async def test_entry_past_horizon_is_not_served(
        self, build_pipeline, upstream: UpstreamStub, clock: FakeClock
    ) -> None:
        pipeline, cache = build_pipeline(stale_horizon_s=3600)
        await cache.put(HISTORY_URL, CachedPayload(body={"current": []}), ttl=600)
        clock.advance(3601)
        upstream.routes[HISTORY] = httpx.Response(503)

        outcome = await pipeline.handle("GET", HISTORY)

        assert outcome.status_code == 502

    @pytest.mark.asyncio
    async def test_structural_default_on_403_without_cache(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        path = "entry/123/event/7/picks/"
        upstream.routes[path] = httpx.Response(403)
        pipeline, _ = build_pipeline()

        outcome = await pipeline.handle("GET", path)

        assert outcome.status_code == 200
        assert outcome.source is OutcomeSource.STRUCTURAL
        assert outcome.body["picks"] == []
        assert outcome.body["active_chip"] is None
        assert outcome.headers[HEADER_FALLBACK] == "structural"
        assert HEADER_STALE not in outcome.headers
        # Sensitive path: 403 was retried with the full budget.
        assert upstream.calls_to(path) == 3

    @pytest.mark.asyncio
    async def test_structural_default_is_not_cached(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        path = "entry/123/transfers/"
        upstream.routes[path] = httpx.Response(403)
        pipeline, cache = build_pipeline()

        await pipeline.handle("GET", path)

        assert await cache.get_stale(f"{BASE_URL}/{path}") is None

    @pytest.mark.asyncio
    async def test_404_passes_through(self, build_pipeline, upstream: UpstreamStub) -> None:
        pipeline, _ = build_pipeline()

        outcome = await pipeline.handle("GET", "entry/999/")

        assert outcome.status_code == 404
        assert outcome.body == {"detail": "Not found."}
        assert outcome.headers[HEADER_UPSTREAM_STATUS] == "404"
        assert upstream.calls_to("entry/999/") == 1

    @pytest.mark.asyncio
    async def test_4xx_without_body_gets_proxy_error_body(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        upstream.routes["bootstrap-static/"] = httpx.Response(403)
        pipeline, _ = build_pipeline()

        outcome = await pipeline.handle("GET", "bootstrap-static/")

        assert outcome.status_code == 403
        assert outcome.body == {
            "error": "Proxy error",
            "details": "Upstream returned HTTP 403",
        }


class TestRequestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH"])
    async def test_unsafe_methods_rejected_before_cache(
        self, build_pipeline, upstream: UpstreamStub, method: str
    ) -> None:
        pipeline, cache = build_pipeline()

        with pytest.raises(MethodNotAllowedError):
            await pipeline.handle(method, HISTORY)

        assert len(cache) == 0
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_head_is_allowed(self, build_pipeline, upstream: UpstreamStub) -> None:
        upstream.routes["teams/"] = httpx.Response(200, json=[])
        pipeline, _ = build_pipeline()

        outcome = await pipeline.handle("HEAD", "teams/")

        assert outcome.status_code == 200

    @pytest.mark.asyncio
    async def test_dot_segments_rejected(self, build_pipeline) -> None:
        pipeline, _ = build_pipeline()

        with pytest.raises(InvalidRequestError):
            await pipeline.handle("GET", "entry/../my-team/1/")


class TestCoalescing:
    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch_when_enabled(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        upstream.routes["bootstrap-static/"] = httpx.Response(200, json={"events": []})
        pipeline, _ = build_pipeline(coalesce_inflight=True)

        outcomes = await asyncio.gather(
            *(pipeline.handle("GET", "bootstrap-static/") for _ in range(5))
        )

        assert all(o.status_code == 200 for o in outcomes)
        assert upstream.calls_to("bootstrap-static/") == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_fetch_separately_by_default(
        self, build_pipeline, upstream: UpstreamStub
    ) -> None:
        upstream.routes["bootstrap-static/"] = httpx.Response(200, json={"events": []})
        pipeline, _ = build_pipeline()

        await asyncio.gather(*(pipeline.handle("GET", "bootstrap-static/") for _ in range(3)))

        assert upstream.calls_to("bootstrap-static/") == 3
