"""Caching reverse proxy for the Fantasy Premier League API."""

__version__ = "0.1.0"
