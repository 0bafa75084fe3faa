"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources, in priority order:
#
#   1. **Environment variables**, e.g. MAX_CONCURRENT_UPSTREAM=4
#   2. **.env file**, key=value lines in the project root .env file
#
# Field ``max_concurrent_upstream`` maps to env var
# ``MAX_CONCURRENT_UPSTREAM`` (pydantic-settings uppercases and matches).
# Every field is a plain scalar with a default, so the proxy starts with
# no configuration at all.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """FPL proxy settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Upstream ===
    upstream_base_url: str = "https://fantasy.premierleague.com/api"
    fetch_attempts: int = Field(default=3, ge=1)
    fetch_timeout_s: float = Field(default=15.0, gt=0)
    backoff_response_ms: int = Field(default=500, ge=0)   # after 429 / 5xx / sensitive 403
    backoff_transport_ms: int = Field(default=600, ge=0)  # after DNS / connect / timeout
    backoff_jitter_ms: int = Field(default=250, ge=0)

    # === Scheduling ===
    max_concurrent_upstream: int = Field(default=2, ge=1)
    dispatch_spacing_ms: int = Field(default=250, ge=0)
    max_queue_size: int = Field(default=0, ge=0)  # 0 = unbounded
    coalesce_inflight: bool = False

    # === Cache ===
    ttl_static_s: int = 3600   # bootstrap-static, fixtures, teams
    ttl_live_s: int = 60       # live gameweek data, picks, event-status
    ttl_history_s: int = 600   # entry history, element-summary, transfers
    ttl_default_s: int = 300
    stale_horizon_s: int = 12 * 60 * 60
    cache_max_entries: int = Field(default=1000, ge=1)
    cache_purge_interval_s: int = Field(default=600, ge=0)  # 0 disables the sweep
    structural_defaults_path: str = ""

    # === Inbound ===
    allowed_origins: str = "https://gustavekstrm.github.io"
    rate_limit_per_minute: int = Field(default=120, ge=0)  # 0 disables
    trust_proxy_headers: bool = False
    aggregate_max_ids: int = Field(default=50, ge=1)

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 3000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_allowed_origins(self) -> list[str]:
        """Return the comma-separated ``allowed_origins`` value as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def ttl_for_class(self, resource_class: str) -> int:
        """Return the cache TTL in seconds configured for *resource_class*."""
        return {
            "static": self.ttl_static_s,
            "live": self.ttl_live_s,
            "history": self.ttl_history_s,
        }.get(resource_class, self.ttl_default_s)
