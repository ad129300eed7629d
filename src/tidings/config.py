"""
Configuration management for Tidings.

Uses XDG base directories:
- Config: ~/.config/tidings/config.toml
- Data: ~/.tidings/ (cache database, debug log, API token)
"""

import copy
import os
from pathlib import Path
from typing import Any

# XDG defaults
DEFAULT_CONFIG_HOME = Path.home() / ".config"
DEFAULT_DATA_HOME = Path.home() / ".tidings"

DEFAULT_BASE_URL = "https://octobox.io"


def get_config_dir() -> Path:
    """Get the config directory (XDG_CONFIG_HOME/tidings)."""
    base = Path(os.environ.get("XDG_CONFIG_HOME", DEFAULT_CONFIG_HOME))
    return base / "tidings"


def get_tidings_home() -> Path:
    """Get the data directory (~/.tidings or TIDINGS_HOME)."""
    if env_home := os.environ.get("TIDINGS_HOME"):
        return Path(env_home)
    return DEFAULT_DATA_HOME


def get_config_path() -> Path:
    """Get the path to config.toml."""
    return get_config_dir() / "config.toml"


def get_db_path() -> Path:
    """Get the path to the notification cache."""
    return get_tidings_home() / "cache.db"


def get_log_path() -> Path:
    """Get the path to debug.log."""
    return get_tidings_home() / "debug.log"


def get_token_path() -> Path:
    """Get the path to the stored API token."""
    return get_tidings_home() / "token"


def ensure_dirs() -> None:
    """Ensure all required directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_tidings_home().mkdir(parents=True, exist_ok=True)


def get_default_config() -> dict[str, Any]:
    """Return default configuration."""
    return {
        "remote": {
            "base_url": DEFAULT_BASE_URL,
            "per_page": 100,
            "timeout": 30.0,
        },
        "sync": {
            "cache_ttl_seconds": 300,
            "poll_interval_seconds": 1.0,
            "poll_attempts": 30,
        },
        "ui": {
            "probe_interval_seconds": 1.0,
        },
    }


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config() -> dict[str, Any]:
    """
    Load configuration from config.toml, layered over the defaults.

    Environment variables win over the file:
    - TIDINGS_URL overrides remote.base_url
    """
    config = get_default_config()
    config_path = get_config_path()

    if config_path.exists():
        # Lazy import tomli only when needed
        import tomli

        with open(config_path, "rb") as f:
            config = _merge(config, tomli.load(f))

    if env_url := os.environ.get("TIDINGS_URL"):
        config["remote"]["base_url"] = env_url

    config["remote"]["base_url"] = config["remote"]["base_url"].rstrip("/")
    return config


def load_api_token(config: dict[str, Any] | None = None) -> str | None:
    """Find the API token: env var, then config file, then the token file."""
    token = os.environ.get("TIDINGS_API_TOKEN")
    if token:
        return token.strip()

    config = config or load_config()
    token = config.get("remote", {}).get("api_token")
    if token:
        return token.strip()

    token_path = get_token_path()
    if token_path.exists():
        token = token_path.read_text(encoding="utf-8").strip()
        return token or None
    return None


def save_token(token: str) -> Path:
    """Persist the API token, readable only by the current user."""
    ensure_dirs()
    token_path = get_token_path()
    token_path.write_text(token.strip(), encoding="utf-8")
    token_path.chmod(0o600)
    return token_path
