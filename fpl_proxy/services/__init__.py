"""Services built on top of the proxy pipeline."""

from fpl_proxy.services.aggregate_service import AggregateService, parse_gameweek, parse_ids

__all__ = ["AggregateService", "parse_gameweek", "parse_ids"]
