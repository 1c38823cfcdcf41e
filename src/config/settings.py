"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources, in priority order:
#
#   1. **Environment variables** - e.g. CACHE_DEFAULT_TTL_MINUTES=10
#   2. **.env file** - key=value lines in the project root .env file
#
# Field ``cache_db_path`` maps to env var ``CACHE_DB_PATH`` and so on.
# Defaults below apply when neither source sets a value.  Per-resource
# TTLs live in config/config.yaml (see src/config/loader.py).
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Data-layer settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Cache ===
    # False keeps the durable tier in memory only (nothing written to disk).
    cache_persistent: bool = True
    cache_db_path: str = "data/cache.db"
    # Durable keys carrying this prefix belong to the cache; clear() only
    # touches those.
    cache_namespace_prefix: str = "scbc_cache_"
    cache_default_ttl_minutes: float = Field(default=5.0, ge=0)
    cache_memory_max_entries: int = Field(default=1000, ge=1)
    cache_sweep_interval_seconds: float = Field(default=300.0, gt=0)

    # === Live listeners ===
    listener_idle_timeout_seconds: float = Field(default=300.0, ge=0)
    listener_replay_latest: bool = False

    # === App Config ===
    config_path: str = "config/config.yaml"
    app_env: str = "development"
    log_level: str = "INFO"
