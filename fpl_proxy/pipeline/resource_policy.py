"""Per-path caching and fallback policy.

Turns the static tables in :mod:`fpl_proxy.config.domain_knowledge` plus the
configured TTLs into one :class:`ResourcePolicy` per upstream path.  The
decision depends on the path alone, never on what upstream sent back.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from fpl_proxy.config import domain_knowledge
from fpl_proxy.config.settings import Settings

# Browsers re-check live data at least this often, whatever the server TTL.
_LIVE_BROWSER_MAX_AGE = 30
_SHARED_BROWSER_MAX_AGE = 60

STALE_CACHE_CONTROL = "no-cache"
STRUCTURAL_CACHE_CONTROL = "no-store"
ERROR_CACHE_CONTROL = "no-store"


@dataclass(frozen=True)
class ResourcePolicy:
    """How the pipeline treats one upstream path."""

    path: str
    resource_class: str
    ttl: int
    sensitive: bool
    cache_control: str
    structural_kind: str | None = None


class ResourcePolicyResolver:
    """Derive :class:`ResourcePolicy` objects from settings and the path tables.

    Parameters
    ----------
    settings:
        Supplies per-class TTLs and the stale horizon.
    structural_defaults:
        Kind -> payload table (see ``config.loader.load_structural_defaults``).
        Kinds missing from the table disable structural fallback for their
        paths.
    """

    def __init__(self, settings: Settings, structural_defaults: dict[str, Any] | None = None) -> None:
        self._settings = settings
        self._structural_defaults = (
            domain_knowledge.default_structural_table()
            if structural_defaults is None
            else structural_defaults
        )

    def resolve(self, path: str) -> ResourcePolicy:
        resource_class = domain_knowledge.classify_resource(path)
        ttl = self._settings.ttl_for_class(resource_class)
        kind = domain_knowledge.structural_kind(path)
        return ResourcePolicy(
            path=path,
            resource_class=resource_class,
            ttl=ttl,
            sensitive=domain_knowledge.is_sensitive(path),
            cache_control=self._cache_control(resource_class, ttl),
            structural_kind=kind if kind in self._structural_defaults else None,
        )

    def structural_default(self, policy: ResourcePolicy) -> Any | None:
        """Return a fresh copy of the default payload for *policy*, or ``None``."""
        if policy.structural_kind is None:
            return None
        return copy.deepcopy(self._structural_defaults[policy.structural_kind])

    def _cache_control(self, resource_class: str, ttl: int) -> str:
        if resource_class == "live":
            return f"public, max-age={min(ttl, _LIVE_BROWSER_MAX_AGE)}"
        return (
            f"public, max-age={min(ttl, _SHARED_BROWSER_MAX_AGE)}, s-maxage={ttl}, "
            f"stale-while-revalidate={self._settings.stale_horizon_s}"
        )
