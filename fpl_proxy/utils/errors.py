"""Custom exception hierarchy for the FPL proxy.

All application exceptions inherit from :class:`FplProxyError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "fpl", "scheduler") caused the failure, and an HTTP
``status_code`` the API layer uses when converting the error to JSON.

The hierarchy is organized by where the request was stopped:

    FplProxyError  (base -- catch-all, HTTP 500)
    +-- InvalidRequestError      (bad path or query parameters, 400)
    +-- MethodNotAllowedError    (verb other than GET/HEAD, 405)
    +-- ClientRateLimitError     (per-IP request ceiling exceeded, 429)
    +-- UpstreamTransportError   (DNS/connection/timeout after retries, 502)
    +-- QueueFullError           (upstream scheduler backlog bound hit, 503)
    +-- ConfigurationError       (startup / invalid config, 500)

Upstream HTTP statuses (429, 5xx, 403, 404 ...) are *not* exceptions: the
fetcher hands the last response back and the pipeline alone decides what the
client sees.
"""


class FplProxyError(Exception):
    """Base exception for all FPL proxy errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  The ``__str__`` method prefixes the provider name in
    brackets for structured log output, e.g. ``[fpl] connection refused``.
    """

    status_code: int = 500
    error_label: str = "Internal error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Client-side errors
# ---------------------------------------------------------------------------

class InvalidRequestError(FplProxyError):
    """Raised when query parameters or the forwarded path are invalid."""

    status_code = 400
    error_label = "Invalid request"

    def __init__(
        self,
        message: str = "Invalid request parameters",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MethodNotAllowedError(FplProxyError):
    """Raised for any verb other than GET/HEAD on the proxied surface."""

    status_code = 405
    error_label = "Method not allowed"

    def __init__(
        self,
        message: str = "Only GET and HEAD are supported",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ClientRateLimitError(FplProxyError):
    """Raised when a single client exceeds the per-IP request ceiling.

    ``retry_after`` is the number of whole seconds until the oldest request
    in the client's window ages out.
    """

    status_code = 429
    error_label = "Too many requests"

    def __init__(
        self,
        message: str = "Request rate limit exceeded",
        provider_name: str | None = None,
        retry_after: int = 1,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Upstream / scheduling errors
# ---------------------------------------------------------------------------

class UpstreamTransportError(FplProxyError):
    """Raised when every fetch attempt failed below the HTTP layer.

    Wraps the last ``httpx`` transport error observed so the pipeline can
    fall back to stale data, or surface a 502 with a best-effort detail.
    """

    status_code = 502
    error_label = "Upstream unavailable"

    def __init__(
        self,
        message: str = "Upstream service is unreachable",
        provider_name: str | None = None,
        attempts: list | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.attempts = attempts or []


class QueueFullError(FplProxyError):
    """Raised when the upstream scheduler backlog is at its configured bound."""

    status_code = 503
    error_label = "Proxy busy"

    def __init__(
        self,
        message: str = "Upstream request queue is full",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(FplProxyError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
