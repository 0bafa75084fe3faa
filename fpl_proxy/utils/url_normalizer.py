"""Normalization of forwarded paths and query strings.

The normalized outbound URL doubles as the cache key, so two requests that
mean the same upstream resource must normalize to the same string:

    "//entry/123//history/"  ->  "entry/123/history/"
    "?b=2&a=1"               ->  "a=1&b=2"

Dot segments are refused outright rather than resolved; nothing under the
FPL API needs them and resolving them would let a caller walk off the
configured base path.
"""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlencode

from fpl_proxy.utils.errors import InvalidRequestError


def normalize_upstream_path(raw_path: str) -> str:
    """Collapse empty segments and strip the leading slash of *raw_path*.

    A trailing slash is kept when the caller sent one (the FPL API
    distinguishes ``bootstrap-static/`` from ``bootstrap-static``).

    Raises
    ------
    InvalidRequestError
        For an empty path or one containing ``.`` / ``..`` segments.
    """
    segments = [segment for segment in raw_path.split("/") if segment]
    if not segments:
        raise InvalidRequestError("Missing upstream path")
    if any(segment in (".", "..") for segment in segments):
        raise InvalidRequestError("Dot segments are not allowed in the upstream path")

    path = "/".join(segments)
    if raw_path.endswith("/"):
        path += "/"
    return path


def normalize_query(items: Iterable[tuple[str, str]]) -> str:
    """Return *items* sorted by key then value and URL-encoded."""
    return urlencode(sorted(items), doseq=False)


def build_upstream_url(base_url: str, path: str, query: str = "") -> str:
    """Join a normalized *path* and *query* onto *base_url*."""
    url = f"{base_url.rstrip('/')}/{path}"
    if query:
        url = f"{url}?{query}"
    return url
