"""Public interface definitions for swappable collaborators.

The pipeline depends on these abstract classes, never on a concrete
backend, so tests and alternative deployments can inject their own.

    Interface        →  Concrete implementations (in fpl_proxy/providers/)
    ────────────────────────────────────────────────────────────────
    ICacheProvider   →  MemoryCacheProvider
"""

from fpl_proxy.interfaces.cache_provider import ICacheProvider

__all__ = ["ICacheProvider"]
