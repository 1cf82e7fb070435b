"""Settings: tunables from config.yaml, secrets from the environment (.env)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from rentalhost.exceptions import ConfigurationError

# Points at an alternative config.yaml, e.g. one per deployment
CONFIG_PATH_VAR = "RENTALHOST_CONFIG"


def _locate_config() -> Path:
    explicit = os.environ.get(CONFIG_PATH_VAR)
    if explicit:
        return Path(explicit).resolve()
    current = Path(__file__).resolve().parent
    for _ in range(10):
        if (current / "config.yaml").exists():
            return current / "config.yaml"
        current = current.parent
    return Path.cwd() / "config.yaml"


CONFIG_PATH = _locate_config()
PROJECT_ROOT = CONFIG_PATH.parent


def load_settings(path: Path = CONFIG_PATH) -> dict[str, Any]:
    """Parse config.yaml. The top level must be a mapping of named sections."""
    if not path.exists():
        raise ConfigurationError(f"config.yaml not found at {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping of sections")
    return data


def section(name: str) -> dict[str, Any]:
    """One top-level block of config.yaml, e.g. ``section("emails")``. Absent blocks are empty."""
    block = settings.get(name) or {}
    if not isinstance(block, dict):
        raise ConfigurationError(f"Config section {name!r} must be a mapping")
    return block


def get_env(key: str, default: str | None = None) -> str | None:
    """Environment variable, with blank values treated as unset."""
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value


def get_env_required(key: str) -> str:
    value = get_env(key)
    if value is None:
        raise ConfigurationError(f"{key} is not configured")
    return value


def get_database_url() -> str:
    """DATABASE_URL, or a SQLite file beside config.yaml."""
    return get_env("DATABASE_URL") or f"sqlite:///{PROJECT_ROOT / 'rentalhost.db'}"


def get_base_url() -> str:
    """Public URL of the guest-facing site, without a trailing slash."""
    url = get_env("BASE_URL") or section("app").get("base_url", "http://localhost:3000")
    return url.rstrip("/")


def is_production() -> bool:
    return (get_env("APP_ENV") or section("app").get("environment", "development")) == "production"


load_dotenv(PROJECT_ROOT / ".env")
settings: dict[str, Any] = load_settings()
