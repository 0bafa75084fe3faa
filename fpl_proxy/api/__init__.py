"""FPL proxy API layer: routes, schemas and middleware."""

from fpl_proxy.api.middleware import (
    ErrorHandlingMiddleware,
    PerClientLimiter,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    register_exception_handlers,
)
from fpl_proxy.api.routes import router
from fpl_proxy.api.schemas import ErrorResponse, HealthResponse, ReadyResponse

__all__ = [
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "PerClientLimiter",
    "RateLimitMiddleware",
    "ReadyResponse",
    "RequestLoggingMiddleware",
    "configure_cors",
    "register_exception_handlers",
    "router",
]
