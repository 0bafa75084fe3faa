"""Static knowledge about the Fantasy Premier League API's URL space.

# ─── PURPOSE ──────────────────────────────────────────────────────────
#
# The proxy never looks inside a response body to decide how to treat it.
# Everything it needs to know about a resource is derived from the path:
#
#   - how long a cached copy stays fresh (the *resource class*),
#   - whether a 403 is worth retrying (the path is *sensitive*),
#   - which empty-but-valid shape to return when upstream refuses the
#     request and nothing is cached (the *structural default kind*).
#
# All helpers here are pure.  Patterns are compiled once at import time and
# matched against the normalized upstream path (no leading slash, trailing
# slash preserved as sent by the client).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import copy
import re
from typing import Any


# ═════════════════════════════════════════════════════════════════════════
# 1. RESOURCE CLASSES (cache TTL)
# ═════════════════════════════════════════════════════════════════════════
# First match wins, so the more specific live patterns sit before the broad
# entry/* history patterns.

RESOURCE_CLASS_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^event/\d+/live/?$"), "live"),
    (re.compile(r"^entry/\d+/event/\d+/picks/?$"), "live"),
    (re.compile(r"^event-status/?$"), "live"),
    (re.compile(r"^bootstrap-static/?$"), "static"),
    (re.compile(r"^fixtures/?$"), "static"),
    (re.compile(r"^teams/?$"), "static"),
    (re.compile(r"^entry/\d+/history/?$"), "history"),
    (re.compile(r"^entry/\d+/transfers/?$"), "history"),
    (re.compile(r"^element-summary/\d+/?$"), "history"),
]

DEFAULT_RESOURCE_CLASS = "default"


def classify_resource(path: str) -> str:
    """Return ``"static"``, ``"live"``, ``"history"`` or ``"default"`` for *path*."""
    for pattern, resource_class in RESOURCE_CLASS_PATTERNS:
        if pattern.match(path):
            return resource_class
    return DEFAULT_RESOURCE_CLASS


# ═════════════════════════════════════════════════════════════════════════
# 2. SENSITIVE PATHS
# ═════════════════════════════════════════════════════════════════════════
# Per-user, live or event-scoped data.  The edge in front of the FPL API
# answers these with an occasional 403 that clears on retry.

SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^entry/\d+(/.*)?$"),
    re.compile(r"^event/\d+/live/?$"),
    re.compile(r"^event-status/?$"),
    re.compile(r"^leagues-(classic|h2h)/.*$"),
    re.compile(r"^my-team/.*$"),
]


def is_sensitive(path: str) -> bool:
    return any(pattern.match(path) for pattern in SENSITIVE_PATTERNS)


# ═════════════════════════════════════════════════════════════════════════
# 3. STRUCTURAL DEFAULTS
# ═════════════════════════════════════════════════════════════════════════
# Minimal payloads that front-ends can render as "no data yet".  Keyed by
# resource kind; STRUCTURAL_KIND_PATTERNS maps paths onto kinds.  The table
# can be overridden or extended from YAML (see config.loader).

STRUCTURAL_DEFAULTS: dict[str, Any] = {
    "picks": {
        "active_chip": None,
        "automatic_subs": [],
        "entry_history": {},
        "picks": [],
    },
    "entry_history": {
        "current": [],
        "past": [],
        "chips": [],
    },
    "transfers": [],
    "live": {
        "elements": [],
    },
}

STRUCTURAL_KIND_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^entry/\d+/event/\d+/picks/?$"), "picks"),
    (re.compile(r"^entry/\d+/history/?$"), "entry_history"),
    (re.compile(r"^entry/\d+/transfers/?$"), "transfers"),
    (re.compile(r"^event/\d+/live/?$"), "live"),
]


def structural_kind(path: str) -> str | None:
    """Return the structural-default kind for *path*, or ``None``."""
    for pattern, kind in STRUCTURAL_KIND_PATTERNS:
        if pattern.match(path):
            return kind
    return None


def default_structural_table() -> dict[str, Any]:
    """Return a deep copy of the built-in structural-default table."""
    return copy.deepcopy(STRUCTURAL_DEFAULTS)
