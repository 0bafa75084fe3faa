"""YAML loader for the structural-default table.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# The structural-default table is built in layers (later layers win):
#
#   1. domain_knowledge.STRUCTURAL_DEFAULTS   built-in shapes per kind
#   2. STRUCTURAL_DEFAULTS_PATH              optional YAML file
#
# The YAML file is a mapping of kind -> payload.  A kind present in the
# file replaces the built-in shape wholesale (shapes are never partially
# merged); a kind set to ``null`` removes it from the table.
#
#   picks:
#     active_chip: null
#     picks: []
#   transfers: null        # never fabricate a transfers list
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from fpl_proxy.config.domain_knowledge import default_structural_table
from fpl_proxy.utils.errors import ConfigurationError
from fpl_proxy.utils.logging import get_logger

_logger = get_logger(__name__)


def load_structural_defaults(path: str = "") -> dict[str, Any]:
    """Return the built-in structural defaults with the YAML file at *path* applied.

    Args:
        path: YAML file location.  Empty string means "built-ins only".

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping.
    """
    table = default_structural_table()
    if not path:
        return table

    config_path = Path(path)
    if not config_path.exists():
        _logger.warning("structural_defaults_file_missing", path=path)
        return table

    with open(config_path, encoding="utf-8") as f:
        try:
            overrides = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc

    if not isinstance(overrides, dict):
        raise ConfigurationError(f"{path} must contain a mapping of kind -> payload")

    _apply_overrides(table, overrides)
    _logger.info("structural_defaults_loaded", path=path, kinds=sorted(table))
    return table


def _apply_overrides(base: dict[str, Any], overrides: dict[str, Any]) -> None:
    """Replace or drop kinds in *base* according to *overrides*, in place."""
    for kind, payload in overrides.items():
        if payload is None:
            base.pop(str(kind), None)
        else:
            base[str(kind)] = payload
