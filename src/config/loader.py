"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   0. Settings defaults  - Field defaults in src/config/settings.py
#   1. config/config.yaml - Static defaults checked into the repo
#                            (per-resource cache TTLs live only here)
#   2. .env file          - Local developer overrides (not committed)
#   3. Environment vars   - Set at deploy time
#
# load_config() starts from the Settings defaults, deep-merges the YAML
# file over them, then merges only the Settings fields that were set
# explicitly.  A YAML value therefore sticks until an env var replaces it.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings
from src.utils.errors import ConfigurationError


# Settings field -> (section, key) in the resolved config.
_SETTINGS_KEYS: dict[str, tuple[str, str]] = {
    "app_env": ("app", "env"),
    "cache_persistent": ("cache", "persistent"),
    "cache_db_path": ("cache", "db_path"),
    "cache_namespace_prefix": ("cache", "namespace_prefix"),
    "cache_default_ttl_minutes": ("cache", "default_ttl_minutes"),
    "cache_memory_max_entries": ("cache", "memory_max_entries"),
    "cache_sweep_interval_seconds": ("cache", "sweep_interval_seconds"),
    "listener_idle_timeout_seconds": ("listeners", "idle_timeout_seconds"),
    "listener_replay_latest": ("listeners", "replay_latest"),
    "log_level": ("logging", "level"),
}


def load_config(path: str | None = None, settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Settings defaults fill any key the YAML leaves out; values that were
    set explicitly (env var, ``.env`` or constructor argument) replace the
    YAML ones.

    Args:
        path: Path to the YAML file.  Defaults to ``settings.config_path``.
        settings: Settings to merge.  Read from the environment if omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML is malformed or a TTL is not a
            non-negative number.
    """
    settings = settings or Settings()
    config_path = Path(path or settings.config_path)
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Malformed config file {config_path}: {exc}") from exc
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    config = _sections(settings.model_dump())
    _deep_merge(config, yaml_config)
    _deep_merge(config, _sections(settings.model_dump(exclude_unset=True)))
    _validate_ttls(config.get("cache", {}).get("ttl_minutes", {}))
    return config


def _sections(values: dict) -> dict:
    """Nest flat Settings values under their config sections."""
    nested: dict = {}
    for field, value in values.items():
        if field in _SETTINGS_KEYS:
            section, key = _SETTINGS_KEYS[field]
            nested.setdefault(section, {})[key] = value
    return nested


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _validate_ttls(ttls: object) -> None:
    if not isinstance(ttls, dict):
        raise ConfigurationError("cache.ttl_minutes must be a mapping of resource -> minutes")
    for name, minutes in ttls.items():
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes < 0:
            raise ConfigurationError(
                f"cache.ttl_minutes.{name} must be a non-negative number, got {minutes!r}"
            )
