"""Configuration module: exports Settings and the structural-defaults loader."""

from fpl_proxy.config.loader import load_structural_defaults
from fpl_proxy.config.settings import Settings

__all__ = ["Settings", "load_structural_defaults"]
