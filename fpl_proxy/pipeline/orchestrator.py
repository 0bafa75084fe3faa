"""Proxy request pipeline.

Orchestrates the response cache, the upstream scheduler and the retrying
fetcher for every proxied request, and is the only layer that decides the
HTTP status the client receives.

# ─── REQUEST STATE MACHINE ────────────────────────────────────────────
#
#   CacheCheck ── fresh hit ──────────────────────────→ Respond (HIT)
#       │ miss
#       ▼
#   Dispatch (scheduler → fetcher, retries inside)
#       │
#       ├── 2xx ──→ Store ──────────────────────────→ Respond (MISS)
#       │
#       └── non-2xx / transport error
#               │
#               ▼
#           StaleCheck ── hit ──────────────────────→ RespondStale
#               │ miss
#               ▼
#           StructuralCheck (403 + known kind) ─────→ RespondStructural
#               │ miss
#               ▼
#           RespondError (4xx passthrough, else 502)
#
# Stale data always wins over an error: availability over freshness.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from fpl_proxy.interfaces.cache_provider import ICacheProvider
from fpl_proxy.models.cache import CachedPayload
from fpl_proxy.models.outcome import OutcomeSource, ProxyOutcome
from fpl_proxy.models.upstream import UpstreamResponse
from fpl_proxy.pipeline.resource_policy import (
    ERROR_CACHE_CONTROL,
    STALE_CACHE_CONTROL,
    STRUCTURAL_CACHE_CONTROL,
    ResourcePolicy,
    ResourcePolicyResolver,
)
from fpl_proxy.providers.upstream.fpl_fetcher import FplFetcher
from fpl_proxy.utils.concurrency import UpstreamScheduler
from fpl_proxy.utils.errors import MethodNotAllowedError, QueueFullError, UpstreamTransportError
from fpl_proxy.utils.logging import get_logger
from fpl_proxy.utils.url_normalizer import (
    build_upstream_url,
    normalize_query,
    normalize_upstream_path,
)

ALLOWED_METHODS = frozenset({"GET", "HEAD"})

HEADER_CACHE = "X-Proxy-Cache"
HEADER_STALE = "X-Proxy-Stale"
HEADER_FALLBACK = "X-Proxy-Fallback"
HEADER_UPSTREAM_STATUS = "X-Proxy-Upstream-Status"

_TRANSPORT_LABEL = "transport-error"


class ProxyPipeline:
    """Per-request orchestration of cache, scheduler and fetcher.

    Parameters
    ----------
    cache:
        Shared response cache.
    scheduler:
        Process-wide upstream scheduler; every fetch goes through it.
    fetcher:
        Retrying fetcher used inside scheduled tasks.
    policies:
        Resolves TTL, sensitivity and fallback shape from the path.
    base_url:
        Upstream API root, e.g. ``https://fantasy.premierleague.com/api``.
    stale_horizon:
        Seconds a cached entry remains usable as a fallback.
    coalesce_inflight:
        Share one upstream call between concurrent misses on the same URL.
    """

    def __init__(
        self,
        cache: ICacheProvider,
        scheduler: UpstreamScheduler,
        fetcher: FplFetcher,
        policies: ResourcePolicyResolver,
        base_url: str,
        stale_horizon: float | None = None,
        coalesce_inflight: bool = False,
    ) -> None:
        self._cache = cache
        self._scheduler = scheduler
        self._fetcher = fetcher
        self._policies = policies
        self._base_url = base_url
        self._stale_horizon = stale_horizon
        self._coalesce = coalesce_inflight
        self._inflight: dict[str, asyncio.Future[UpstreamResponse]] = {}
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle(
        self,
        method: str,
        raw_path: str,
        query_items: Iterable[tuple[str, str]] = (),
    ) -> ProxyOutcome:
        """Entry point for the catch-all route; rejects unsafe verbs first."""
        if method.upper() not in ALLOWED_METHODS:
            raise MethodNotAllowedError(f"{method.upper()} is not supported on proxied paths")
        return await self.resolve(raw_path, query_items)

    async def resolve(
        self,
        raw_path: str,
        query_items: Iterable[tuple[str, str]] = (),
    ) -> ProxyOutcome:
        """Run the full cache → upstream → fallback state machine for one path.

        Raises
        ------
        InvalidRequestError
            If the path cannot be normalized.
        QueueFullError
            If the scheduler refused the fetch and nothing stale is cached.
        """
        path = normalize_upstream_path(raw_path)
        url = build_upstream_url(self._base_url, path, normalize_query(query_items))
        policy = self._policies.resolve(path)

        cached = await self._cache.get_fresh(url)
        if cached is not None:
            return self._respond_cached(cached, policy)

        try:
            upstream = await self._fetch(url, policy)
        except UpstreamTransportError as exc:
            self._logger.warning(
                "upstream_failure",
                url=url,
                status=_TRANSPORT_LABEL,
                error=exc.message,
            )
            return await self._fallback(url, policy, response=None, failure=exc)
        except QueueFullError:
            stale = await self._cache.get_stale(url, self._stale_horizon)
            if stale is None:
                raise
            return self._respond_stale(stale, upstream_label="queue-full", upstream_status=None)

        if upstream.ok:
            payload = CachedPayload(
                body=upstream.body,
                text_body=upstream.text_body,
                content_type=upstream.content_type,
                etag=upstream.etag,
                last_modified=upstream.last_modified,
            )
            await self._cache.put(url, payload, policy.ttl)
            return self._respond_fresh(upstream, policy)

        self._logger.warning(
            "upstream_failure",
            url=url,
            status=upstream.status_code,
            attempts=len(upstream.attempts),
        )
        return await self._fallback(url, policy, response=upstream, failure=None)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _fetch(self, url: str, policy: ResourcePolicy) -> UpstreamResponse:
        def task():  # noqa: ANN202
            return self._fetcher.fetch(url, sensitive=policy.sensitive)

        if not self._coalesce:
            return await self._scheduler.schedule(task)

        pending = self._inflight.get(url)
        if pending is None:
            pending = asyncio.ensure_future(self._scheduler.schedule(task))
            self._inflight[url] = pending
            pending.add_done_callback(lambda done: self._forget_inflight(url, done))
        else:
            self._logger.debug("upstream_coalesced", url=url)
        # shield: one caller going away must not cancel the shared fetch.
        return await asyncio.shield(pending)

    def _forget_inflight(self, url: str, done: asyncio.Future[Any]) -> None:
        if self._inflight.get(url) is done:
            del self._inflight[url]
        if not done.cancelled():
            # Mark the exception retrieved even if every waiter went away.
            done.exception()

    # ------------------------------------------------------------------
    # Fallback chain
    # ------------------------------------------------------------------

    async def _fallback(
        self,
        url: str,
        policy: ResourcePolicy,
        response: UpstreamResponse | None,
        failure: UpstreamTransportError | None,
    ) -> ProxyOutcome:
        status = response.status_code if response is not None else None
        label = str(status) if status is not None else _TRANSPORT_LABEL

        stale = await self._cache.get_stale(url, self._stale_horizon)
        if stale is not None:
            self._logger.info("stale_fallback_served", url=url, upstream_status=label)
            return self._respond_stale(stale, upstream_label=label, upstream_status=status)

        if status == 403:
            shape = self._policies.structural_default(policy)
            if shape is not None:
                self._logger.info(
                    "structural_default_served",
                    url=url,
                    kind=policy.structural_kind,
                )
                return ProxyOutcome(
                    status_code=200,
                    body=shape,
                    headers={
                        HEADER_CACHE: "MISS",
                        HEADER_FALLBACK: "structural",
                        HEADER_UPSTREAM_STATUS: label,
                        "Cache-Control": STRUCTURAL_CACHE_CONTROL,
                    },
                    source=OutcomeSource.STRUCTURAL,
                    upstream_status=status,
                )

        error_headers = {
            HEADER_CACHE: "MISS",
            HEADER_UPSTREAM_STATUS: label,
            "Cache-Control": ERROR_CACHE_CONTROL,
        }

        if response is not None and 400 <= response.status_code < 500:
            if response.body is None:
                return ProxyOutcome(
                    status_code=response.status_code,
                    body={
                        "error": "Proxy error",
                        "details": f"Upstream returned HTTP {response.status_code}",
                    },
                    headers=error_headers,
                    source=OutcomeSource.UPSTREAM,
                    upstream_status=status,
                )
            return ProxyOutcome(
                status_code=response.status_code,
                body=response.body,
                text_body=response.text_body,
                headers=error_headers,
                source=OutcomeSource.UPSTREAM,
                content_type=response.content_type,
                upstream_status=status,
            )

        if failure is not None:
            details = failure.message
        else:
            details = f"Upstream returned HTTP {status} after {len(response.attempts)} attempt(s)"
        return ProxyOutcome(
            status_code=502,
            body={"error": "Upstream unavailable", "details": details},
            headers=error_headers,
            source=OutcomeSource.ERROR,
            upstream_status=status,
        )

    # ------------------------------------------------------------------
    # Response shaping
    # ------------------------------------------------------------------

    def _respond_cached(self, payload: CachedPayload, policy: ResourcePolicy) -> ProxyOutcome:
        headers = {HEADER_CACHE: "HIT", "Cache-Control": policy.cache_control}
        headers.update(_validator_headers(payload.etag, payload.last_modified))
        return ProxyOutcome(
            status_code=200,
            body=payload.body,
            text_body=payload.text_body,
            headers=headers,
            source=OutcomeSource.CACHE,
            content_type=payload.content_type,
        )

    def _respond_fresh(self, upstream: UpstreamResponse, policy: ResourcePolicy) -> ProxyOutcome:
        headers = {HEADER_CACHE: "MISS", "Cache-Control": policy.cache_control}
        headers.update(_validator_headers(upstream.etag, upstream.last_modified))
        return ProxyOutcome(
            status_code=upstream.status_code,
            body=upstream.body,
            text_body=upstream.text_body,
            headers=headers,
            source=OutcomeSource.UPSTREAM,
            content_type=upstream.content_type,
            upstream_status=upstream.status_code,
        )

    @staticmethod
    def _respond_stale(
        payload: CachedPayload,
        upstream_label: str,
        upstream_status: int | None,
    ) -> ProxyOutcome:
        headers = {
            HEADER_CACHE: "HIT",
            HEADER_STALE: "1",
            HEADER_FALLBACK: "stale",
            HEADER_UPSTREAM_STATUS: upstream_label,
            "Cache-Control": STALE_CACHE_CONTROL,
        }
        headers.update(_validator_headers(payload.etag, payload.last_modified))
        return ProxyOutcome(
            status_code=200,
            body=payload.body,
            text_body=payload.text_body,
            headers=headers,
            source=OutcomeSource.STALE,
            content_type=payload.content_type,
            upstream_status=upstream_status,
        )


def _validator_headers(etag: str | None, last_modified: str | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    if etag:
        headers["ETag"] = etag
    if last_modified:
        headers["Last-Modified"] = last_modified
    return headers
