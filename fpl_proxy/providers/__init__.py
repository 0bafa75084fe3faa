"""Concrete providers: response cache and upstream fetcher."""
