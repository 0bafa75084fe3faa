"""Pydantic models shared by the cache, fetcher and pipeline."""

from fpl_proxy.models.aggregate import HistoryResult, SummaryResult
from fpl_proxy.models.cache import CachedPayload, CacheEntry
from fpl_proxy.models.outcome import OutcomeSource, ProxyOutcome
from fpl_proxy.models.upstream import FetchAttempt, UpstreamResponse

__all__ = [
    "CacheEntry",
    "CachedPayload",
    "FetchAttempt",
    "HistoryResult",
    "SummaryResult",
    "OutcomeSource",
    "ProxyOutcome",
    "UpstreamResponse",
]
