"""Utility modules for the FPL proxy.

- **errors** -- exception hierarchy rooted at FplProxyError; each subclass
  knows the HTTP status the API layer should answer with.
- **concurrency** -- the upstream scheduler (bounded, spaced, FIFO) and the
  ``gather_tagged`` fan-out helper used by aggregate endpoints.
- **logging** -- structlog setup with console output in development and
  JSON in production.
- **url_normalizer** -- path/query normalization; the result is the cache key.
"""

from fpl_proxy.utils.concurrency import UpstreamScheduler, gather_tagged
from fpl_proxy.utils.errors import (
    ClientRateLimitError,
    ConfigurationError,
    FplProxyError,
    InvalidRequestError,
    MethodNotAllowedError,
    QueueFullError,
    UpstreamTransportError,
)
from fpl_proxy.utils.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from fpl_proxy.utils.url_normalizer import (
    build_upstream_url,
    normalize_query,
    normalize_upstream_path,
)

__all__ = [
    "ClientRateLimitError",
    "ConfigurationError",
    "FplProxyError",
    "InvalidRequestError",
    "MethodNotAllowedError",
    "QueueFullError",
    "UpstreamScheduler",
    "UpstreamTransportError",
    "bind_request_context",
    "build_upstream_url",
    "clear_request_context",
    "configure_logging",
    "gather_tagged",
    "get_logger",
    "normalize_query",
    "normalize_upstream_path",
]
