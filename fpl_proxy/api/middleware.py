"""API middleware: CORS, request logging, per-IP rate limiting and error handling.

# ─── MIDDLEWARE EXECUTION ORDER ───────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed).  In
# main.create_app():
#
#     app.add_middleware(ErrorHandlingMiddleware)   # innermost
#     app.add_middleware(RateLimitMiddleware)
#     app.add_middleware(RequestLoggingMiddleware)
#     configure_cors(app, ...)                      # outermost
#
#   Request flow:
#     Client → CORS → RequestLogging → RateLimit → ErrorHandling → route
#
# CORS being outermost means 429s and error bodies still carry the
# Access-Control-* headers the browser needs to read them.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from fpl_proxy.api.schemas import ErrorResponse
from fpl_proxy.utils.errors import ClientRateLimitError, FplProxyError, MethodNotAllowedError
from fpl_proxy.utils.logging import bind_request_context, clear_request_context, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

EXPOSED_HEADERS = [
    "Cache-Control",
    "ETag",
    "Last-Modified",
    "Retry-After",
    "X-Proxy-Cache",
    "X-Proxy-Stale",
    "X-Proxy-Fallback",
    "X-Proxy-Upstream-Status",
    "X-Request-ID",
]


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware restricted to *allowed_origins*.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Browser origins allowed to read proxy responses.  Defaults to
        ``["*"]`` when nothing is configured.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
        max_age=600,
    )


# ---------------------------------------------------------------------------
# Error responses
# ---------------------------------------------------------------------------


def error_response(exc: FplProxyError) -> JSONResponse:
    """Render *exc* as ``{error, details}`` with the status it maps to."""
    body = ErrorResponse(error=exc.error_label, details=exc.message)
    headers = {"Cache-Control": "no-store"}
    if isinstance(exc, MethodNotAllowedError):
        headers["Allow"] = "GET, HEAD"
    if isinstance(exc, ClientRateLimitError):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render router-level errors (unmatched route, wrong verb) as ``{error}``."""
    if exc.status_code == 404:
        content = {"error": "Not found"}
    elif exc.status_code == 405:
        content = {"error": "Method not allowed"}
    else:
        content = {"error": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with status, cache state and duration.

    Binds a request id into the structlog context first, so events logged
    further down (cache, scheduler, fetcher) can be correlated with the
    request line.  The id is echoed back as ``X-Request-ID``.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = bind_request_context(request.method, str(request.url.path))
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            _logger.info(
                "http_request",
                status=response.status_code if response else 500,
                cache=response.headers.get("X-Proxy-Cache") if response else None,
                duration_ms=duration_ms,
            )
            clear_request_context()


# ---------------------------------------------------------------------------
# Per-IP rate limiting
# ---------------------------------------------------------------------------


class PerClientLimiter:
    """Sliding-window request counter keyed by client address.

    Parameters
    ----------
    limit:
        Requests allowed per client per window.
    window_s:
        Window length in seconds.
    clock:
        Zero-argument callable returning seconds; tests pass a fake clock.
    """

    _SWEEP_EVERY = 1000  # calls between sweeps of idle clients

    def __init__(
        self,
        limit: int,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = max(1, limit)
        self.window_s = max(1.0, window_s)
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._calls = 0

    def allow(self, key: str) -> tuple[bool, int]:
        """Record one request for *key*; return ``(allowed, retry_after_s)``."""
        now = self._clock()
        self._calls += 1
        if self._calls % self._SWEEP_EVERY == 0:
            self._sweep(now)

        events = self._events.setdefault(key, deque())
        while events and events[0] <= now - self.window_s:
            events.popleft()
        if len(events) >= self.limit:
            retry_after = int(self.window_s - (now - events[0]))
            return False, max(1, retry_after)
        events.append(now)
        return True, 0

    def _sweep(self, now: float) -> None:
        idle = [
            key
            for key, events in self._events.items()
            if not events or events[-1] <= now - self.window_s
        ]
        for key in idle:
            del self._events[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Answer 429 once a client exceeds its per-minute budget on ``/api/*``."""

    def __init__(
        self,
        app: ASGIApp,
        limiter: PerClientLimiter,
        trust_proxy_headers: bool = False,
    ) -> None:
        super().__init__(app)
        self._limiter = limiter
        self._trust_proxy_headers = trust_proxy_headers

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if not request.url.path.startswith("/api/") or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = self._client_ip(request)
        allowed, retry_after = self._limiter.allow(client_ip)
        if not allowed:
            _logger.warning("client_rate_limited", client=client_ip, retry_after=retry_after)
            return error_response(
                ClientRateLimitError(
                    f"Too many requests from this client; retry in {retry_after}s",
                    retry_after=retry_after,
                )
            )
        return await call_next(request)

    def _client_ip(self, request: Request) -> str:
        if self._trust_proxy_headers:
            forwarded_for = request.headers.get("X-Forwarded-For", "")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``FplProxyError`` subclasses and return structured JSON errors.

    The status comes from the exception class.  Full details are logged
    server-side; the client only sees the error label and message.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except FplProxyError as exc:
            log = _logger.error if exc.status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                status=exc.status_code,
                path=str(request.url.path),
            )
            return error_response(exc)
