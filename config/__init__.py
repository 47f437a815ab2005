"""Configuration management."""
import os
import yaml
from pathlib import Path

from utils.errors import ConfigurationError

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path:
        if not Path(path).exists():
            raise ConfigurationError(f"Config file not found: {path}")
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        if not isinstance(overrides, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "BUILDING_ALERTS_DB_PATH": ("database", "path"),
        "BUILDING_ALERTS_LOG_LEVEL": ("logging", "level"),
        "BUILDING_ALERTS_MAX_CONCURRENCY": ("engine", "max_concurrent_buildings"),
    }
    for env_key, config_path in env_map.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    required_sections = ["database", "store", "engine", "alerts", "notifications"]
    for section in required_sections:
        if section not in config:
            raise ConfigurationError(f"Missing required config section: {section}")

    if config["engine"]["max_concurrent_buildings"] < 1:
        raise ConfigurationError("engine.max_concurrent_buildings must be >= 1")
    if config["store"]["timeout_seconds"] <= 0:
        raise ConfigurationError("store.timeout_seconds must be > 0")
    if config["store"].get("max_retries", 0) < 0:
        raise ConfigurationError("store.max_retries must be >= 0")
    for key in ("dedup_window_hours", "default_yearly_consumption",
                "unresolved_critical_hours", "frequency_window_hours"):
        if config["alerts"][key] <= 0:
            raise ConfigurationError(f"alerts.{key} must be > 0")
