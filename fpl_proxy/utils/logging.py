"""structlog configuration and per-request log context.

One processor chain serves both renderers: console output while developing,
one JSON object per line in production.  Which one is used is decided by the
caller (``main`` passes ``APP_ENV == "production"``).  Standard-library
loggers (uvicorn, httpx) are routed through the same chain.

Request context (request id, path) is bound through structlog's contextvars
so that cache, scheduler and fetcher events logged while serving a request
carry the same ``request_id`` without threading it through every call.
"""

import logging
import sys
import uuid

import structlog

# Libraries that log every outbound request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and bridge stdlib logging through it.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.
        json_output: Render JSON lines instead of the coloured console format.

    Returns:
        The root structlog logger.
    """
    level = logging.getLevelName(log_level.upper())

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: structlog.types.Processor
    if json_output:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger tagged with *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_request_context(method: str, path: str) -> str:
    """Start a fresh log context for one inbound request and return its id."""
    request_id = uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, method=method, path=path)
    return request_id


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
