"""Integration tests for the FastAPI app using TestClient and a mocked upstream."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from fpl_proxy.main import create_app
from tests.conftest import UpstreamStub

ORIGIN = "https://gustavekstrm.github.io"


@pytest.fixture
def client(make_settings, upstream: UpstreamStub):
    """App wired to the upstream stub; lifespan runs inside the context."""
    app = create_app(make_settings(), http_transport=upstream.transport)
    with TestClient(app) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Probes and routing errors
# ---------------------------------------------------------------------------


class TestProbes:
    def test_healthz(self, client: TestClient) -> None:
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert len(response.headers["X-Request-ID"]) == 12

    def test_readyz(self, client: TestClient) -> None:
        response = client.get("/readyz")
        assert response.status_code == 200
        assert response.json() == {"ready": True}

    def test_unknown_route_is_404(self, client: TestClient) -> None:
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}

    def test_wrong_verb_on_probe_is_405(self, client: TestClient) -> None:
        response = client.post("/healthz")
        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}


# ---------------------------------------------------------------------------
# Proxy surface
# ---------------------------------------------------------------------------


class TestProxy:
    def test_miss_then_hit(self, client: TestClient, upstream: UpstreamStub) -> None:
        upstream.routes["bootstrap-static/"] = httpx.Response(
            200, json={"events": [{"id": 1}]}, headers={"ETag": '"b1"'}
        )

        first = client.get("/api/bootstrap-static/")
        second = client.get("/api/bootstrap-static/")

        assert first.status_code == 200
        assert first.json() == {"events": [{"id": 1}]}
        assert first.headers["X-Proxy-Cache"] == "MISS"
        assert second.headers["X-Proxy-Cache"] == "HIT"
        assert second.headers["ETag"] == '"b1"'
        assert "s-maxage=3600" in second.headers["Cache-Control"]
        assert upstream.calls_to("bootstrap-static/") == 1

    def test_query_string_is_forwarded(self, client: TestClient, upstream: UpstreamStub) -> None:
        upstream.routes["fixtures/"] = httpx.Response(200, json=[])

        client.get("/api/fixtures/?future=1&event=2")

        assert upstream.requests[0].url.query == b"event=2&future=1"

    def test_upstream_404_passes_through(self, client: TestClient) -> None:
        response = client.get("/api/entry/999/")

        assert response.status_code == 404
        assert response.headers["X-Proxy-Upstream-Status"] == "404"

    def test_upstream_failure_without_cache_is_502(
        self, client: TestClient, upstream: UpstreamStub
    ) -> None:
        upstream.routes["teams/"] = httpx.Response(500)

        response = client.get("/api/teams/")

        assert response.status_code == 502
        assert response.json()["error"] == "Upstream unavailable"
        assert response.headers["Cache-Control"] == "no-store"

    def test_structural_default_on_403(self, client: TestClient, upstream: UpstreamStub) -> None:
        upstream.routes["entry/7/history/"] = httpx.Response(403)

        response = client.get("/api/entry/7/history/")

        assert response.status_code == 200
        assert response.json() == {"current": [], "past": [], "chips": []}
        assert response.headers["X-Proxy-Fallback"] == "structural"

    def test_text_body_keeps_content_type(
        self, client: TestClient, upstream: UpstreamStub
    ) -> None:
        upstream.routes["event-status/"] = httpx.Response(200, text="maintenance")

        response = client.get("/api/event-status/")

        assert response.status_code == 200
        assert response.text == "maintenance"
        assert response.headers["content-type"].startswith("text/plain")

    def test_json_string_body_stays_valid_json(
        self, client: TestClient, upstream: UpstreamStub
    ) -> None:
        upstream.routes["event-status/"] = httpx.Response(200, json="hello")

        first = client.get("/api/event-status/")
        second = client.get("/api/event-status/")

        for response in (first, second):
            assert response.status_code == 200
            assert response.json() == "hello"
            assert response.headers["content-type"] == "application/json"
        assert second.headers["X-Proxy-Cache"] == "HIT"

    def test_upstream_json_content_type_is_forwarded(
        self, client: TestClient, upstream: UpstreamStub
    ) -> None:
        upstream.routes["teams/"] = httpx.Response(
            200,
            content=b'[{"id": 1}]',
            headers={"Content-Type": "application/json; charset=utf-8"},
        )

        response = client.get("/api/teams/")

        assert response.json() == [{"id": 1}]
        assert response.headers["content-type"] == "application/json; charset=utf-8"

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
    def test_unsafe_methods_are_405(
        self, client: TestClient, upstream: UpstreamStub, method: str
    ) -> None:
        response = client.request(method, "/api/bootstrap-static/")

        assert response.status_code == 405
        assert response.headers["Allow"] == "GET, HEAD"
        assert response.json()["error"] == "Method not allowed"
        assert upstream.requests == []

    def test_cors_headers_for_allowed_origin(
        self, client: TestClient, upstream: UpstreamStub
    ) -> None:
        upstream.routes["teams/"] = httpx.Response(200, json=[])

        response = client.get("/api/teams/", headers={"Origin": ORIGIN})

        assert response.headers["access-control-allow-origin"] == ORIGIN
        assert "X-Proxy-Cache" in response.headers["access-control-expose-headers"]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class TestAggregates:
    def test_summary(self, client: TestClient, upstream: UpstreamStub) -> None:
        upstream.routes["entry/1/"] = httpx.Response(200, json={"id": 1})
        upstream.routes["entry/2/"] = httpx.Response(200, json={"id": 2})

        response = client.get("/api/aggregate/summary?ids=1,2,999")

        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["ok"] for r in results] == [True, True, False]
        assert results[2] == {"id": 999, "ok": False, "status": 404}

    def test_history(self, client: TestClient, upstream: UpstreamStub) -> None:
        upstream.routes["entry/1/event/3/picks/"] = httpx.Response(
            200, json={"entry_history": {"points": 58}, "picks": []}
        )

        response = client.get("/api/aggregate/history?ids=1&gw=3")

        assert response.status_code == 200
        body = response.json()
        assert body["gw"] == 3
        assert body["results"][0]["points"] == 58

    @pytest.mark.parametrize(
        "url",
        [
            "/api/aggregate/summary",
            "/api/aggregate/summary?ids=abc",
            "/api/aggregate/history?ids=1",
            "/api/aggregate/history?ids=1&gw=zero",
        ],
    )
    def test_bad_parameters_are_400(self, client: TestClient, url: str) -> None:
        response = client.get(url)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class TestRateLimit:
    def test_client_over_limit_gets_429(self, make_settings, upstream: UpstreamStub) -> None:
        upstream.routes["teams/"] = httpx.Response(200, json=[])
        app = create_app(make_settings(rate_limit_per_minute=2), http_transport=upstream.transport)

        with TestClient(app) as client:
            statuses = [client.get("/api/teams/").status_code for _ in range(3)]
            limited = client.get("/api/teams/")
            probe = client.get("/healthz")

        assert statuses == [200, 200, 429]
        assert limited.status_code == 429
        assert int(limited.headers["Retry-After"]) >= 1
        assert probe.status_code == 200
