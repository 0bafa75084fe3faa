"""Retrying HTTP fetcher for the Fantasy Premier League API.

One call to :meth:`FplFetcher.fetch` is one *logical* request: it makes up
to ``attempts`` HTTP calls, sleeping with linear backoff plus jitter between
them, and hands back the response it settled on.

Retry policy:

* 429 and any 5xx are retried.
* 403 is retried only for *sensitive* paths (per-user and live data), where
  the CDN in front of the FPL API sometimes refuses a request that succeeds
  a moment later.  After such a 403 the next attempt drops to a minimal
  header set, because the edge occasionally dislikes browser-like headers.
* Everything else (2xx, 404, non-sensitive 403 ...) is returned at once.
* Transport errors (DNS, connect, per-attempt timeout) are retried.

When the budget runs out the *last* outcome wins: the last response is
returned as-is, or the last transport error is raised wrapped in
:class:`~fpl_proxy.utils.errors.UpstreamTransportError`.

The fetcher does no concurrency control of its own; the pipeline always
runs it under the upstream scheduler.  Follows the same adapter pattern as
the other providers: injected ``httpx.AsyncClient`` for connection pooling
and testability.
"""

from __future__ import annotations

import asyncio
import random
import time

import httpx

from fpl_proxy.models.upstream import FORWARDED_HEADERS, FetchAttempt, UpstreamResponse
from fpl_proxy.utils.errors import UpstreamTransportError
from fpl_proxy.utils.logging import get_logger

_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)

MINIMAL_HEADERS: dict[str, str] = {
    "User-Agent": _USER_AGENT,
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-GB,en;q=0.9",
}

FULL_HEADERS: dict[str, str] = {
    **MINIMAL_HEADERS,
    "Referer": "https://fantasy.premierleague.com/",
    "Origin": "https://fantasy.premierleague.com",
    "Cache-Control": "no-cache",
}

_DEFAULT_ATTEMPTS = 3
_DEFAULT_TIMEOUT = 15.0  # seconds per HTTP call
_RESPONSE_BACKOFF_MS = 500.0
_TRANSPORT_BACKOFF_MS = 600.0
_JITTER_MS = 250.0


def is_retryable(status_code: int, sensitive: bool) -> bool:
    """Return ``True`` when *status_code* is worth another attempt."""
    if status_code == 429 or status_code >= 500:
        return True
    return status_code == 403 and sensitive


class FplFetcher:
    """Executes one logical GET against the FPL API with retries.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient``.
    attempts:
        Default attempt budget per logical fetch.
    timeout_s:
        Ceiling for each individual HTTP call.
    backoff_response_ms:
        Backoff base after a retryable response status.
    backoff_transport_ms:
        Backoff base after a transport error.
    jitter_ms:
        Upper bound of the uniform random jitter added to every backoff.
    vary_headers:
        Switch to :data:`MINIMAL_HEADERS` after a retryable 403.
    rng:
        Random source for jitter; tests pass a seeded one.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        attempts: int = _DEFAULT_ATTEMPTS,
        timeout_s: float = _DEFAULT_TIMEOUT,
        backoff_response_ms: float = _RESPONSE_BACKOFF_MS,
        backoff_transport_ms: float = _TRANSPORT_BACKOFF_MS,
        jitter_ms: float = _JITTER_MS,
        vary_headers: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        self._http = http_client
        self._attempts = max(1, attempts)
        self._timeout_s = timeout_s
        self._backoff_response_ms = backoff_response_ms
        self._backoff_transport_ms = backoff_transport_ms
        self._jitter_ms = jitter_ms
        self._vary_headers = vary_headers
        self._rng = rng or random.Random()
        self._logger = get_logger(__name__)

    async def fetch(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        attempts: int | None = None,
        sensitive: bool = False,
    ) -> UpstreamResponse:
        """GET *url* until a non-retryable response or the budget runs out.

        Parameters
        ----------
        url:
            Absolute upstream URL.
        headers:
            Extra headers merged over :data:`FULL_HEADERS`.  Not sent on
            minimal-header attempts.
        attempts:
            Overrides the default attempt budget.
        sensitive:
            Treat 403 as transient.

        Raises
        ------
        UpstreamTransportError
            When the final attempt ended in a transport error.
        """
        budget = max(1, attempts or self._attempts)
        history: list[FetchAttempt] = []
        last_response: httpx.Response | None = None
        last_error: httpx.HTTPError | None = None
        use_minimal = False

        for index in range(budget):
            header_set = "minimal" if use_minimal else "full"
            request_headers = (
                dict(MINIMAL_HEADERS) if use_minimal else {**FULL_HEADERS, **(headers or {})}
            )
            has_next = index + 1 < budget
            start = time.perf_counter()

            try:
                response = await self._http.get(
                    url,
                    headers=request_headers,
                    timeout=self._timeout_s,
                )
            except httpx.HTTPError as exc:
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                history.append(
                    FetchAttempt(
                        url=url,
                        header_set=header_set,
                        error=f"{type(exc).__name__}: {exc}",
                        elapsed_ms=elapsed_ms,
                    )
                )
                last_error, last_response = exc, None
                self._logger.warning(
                    "upstream_transport_error",
                    url=url,
                    attempt=index + 1,
                    error=str(exc) or type(exc).__name__,
                )
                if has_next:
                    await self._backoff(self._backoff_transport_ms, index)
                continue

            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            history.append(
                FetchAttempt(
                    url=url,
                    header_set=header_set,
                    status_code=response.status_code,
                    elapsed_ms=elapsed_ms,
                )
            )
            last_response, last_error = response, None

            if not is_retryable(response.status_code, sensitive):
                return self._build(url, response, history)

            self._logger.warning(
                "upstream_retryable_status",
                url=url,
                status=response.status_code,
                attempt=index + 1,
                header_set=header_set,
            )
            if response.status_code == 403 and self._vary_headers:
                use_minimal = True
            if has_next:
                await self._backoff(self._backoff_response_ms, index)

        if last_response is not None:
            self._logger.warning(
                "upstream_retries_exhausted",
                url=url,
                status=last_response.status_code,
                attempts=len(history),
            )
            return self._build(url, last_response, history)

        raise UpstreamTransportError(
            f"{type(last_error).__name__}: {last_error}",
            provider_name="fpl",
            attempts=history,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _backoff(self, base_ms: float, index: int) -> None:
        """Sleep ``base * (index + 1) + jitter`` milliseconds."""
        delay_ms = base_ms * (index + 1) + self._rng.uniform(0, self._jitter_ms)
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

    @staticmethod
    def _build(
        url: str,
        response: httpx.Response,
        history: list[FetchAttempt],
    ) -> UpstreamResponse:
        captured = {
            name: response.headers[name]
            for name in FORWARDED_HEADERS
            if name in response.headers
        }
        body, text_body = _decode_body(response)
        return UpstreamResponse(
            url=url,
            status_code=response.status_code,
            body=body,
            text_body=text_body,
            headers=captured,
            attempts=list(history),
        )


def _decode_body(response: httpx.Response) -> tuple[object, bool]:
    """Return ``(body, is_text)``: parsed JSON, else the raw text, else ``None``."""
    if not response.content:
        return None, False
    try:
        return response.json(), False
    except ValueError:
        return response.text, True
