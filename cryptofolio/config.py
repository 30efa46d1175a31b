"""
Configuration for the portfolio tracker.

Values come from environment variables, layered over an optional YAML file
(path from CRYPTOFOLIO_CONFIG, defaults to .cryptofolio.yaml in the working
directory). Environment always wins over the file.
"""

import os
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path

import yaml

CONFIG_FILENAME = ".cryptofolio.yaml"

# Price data older than this is considered stale (milliseconds).
# Also drives the Cache-Control max-age of the prices endpoint.
STALE_PRICE_THRESHOLD_MS = 30000


@dataclass(frozen=True)
class Settings:
    """Runtime settings."""

    database_url: str = "sqlite+aiosqlite:///./cryptofolio.db"
    sqlalchemy_echo: bool = False

    # Upstream price API (CoinGecko)
    price_api_base_url: str = "https://api.coingecko.com/api/v3"
    price_api_key: str = ""
    price_api_timeout: float = 10.0
    price_api_min_interval: float = 1.2

    # Chart snapshot cache
    chart_cache_ttl: int = 300
    chart_cache_maxsize: int = 4096

    # Auth
    session_ttl_hours: int = 168
    require_email_confirmation: bool = False

    log_level: str = "INFO"


def find_config() -> Path | None:
    """Find the YAML config file, if any."""
    path = Path(os.getenv("CRYPTOFOLIO_CONFIG", CONFIG_FILENAME))
    if path.exists():
        return path
    return None


def load_config_file() -> dict:
    """Load the YAML config file.

    Returns:
        Config dictionary (keys lowercased), or empty dict if no file found.
    """
    path = find_config()
    if path is None:
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return {str(k).lower(): v for k, v in data.items()}


def _coerce(value, target_type):
    if target_type is bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    return target_type(value)


def load_settings() -> Settings:
    """Build settings from the config file and environment variables."""
    file_values = load_config_file()
    values = {}
    for field in fields(Settings):
        raw = os.getenv(field.name.upper())
        if raw is None:
            raw = file_values.get(field.name)
        if raw is not None:
            values[field.name] = _coerce(raw, type(field.default))
    return Settings(**values)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return load_settings()
