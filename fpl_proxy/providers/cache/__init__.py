"""Cache providers.

MemoryCacheProvider keeps entries in process memory: fast but not shared
across worker processes.  For multi-worker deployments, swap in another
ICacheProvider implementation without touching the pipeline.
"""

from fpl_proxy.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
