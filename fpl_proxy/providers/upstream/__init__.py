"""Upstream API adapters."""

from fpl_proxy.providers.upstream.fpl_fetcher import FplFetcher, is_retryable

__all__ = ["FplFetcher", "is_retryable"]
