"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (ACTIONSTRACKER__RATE_LIMIT__POINTS=50)
  2. actionstracker.yaml    (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, PositiveFloat, PositiveInt
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("actionstracker")
_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("actionstracker")
_DEFAULT_STORE_URL = "sqlite:///" + str(Path(_DEFAULT_DATA_DIR) / "store.db")
_DEFAULT_CLIENT_CACHE_PATH = str(Path(_DEFAULT_CACHE_DIR) / "actions.json")

FEED_URL = "https://www.whitehouse.gov/feed/"


def _find_config_file() -> str | None:
    """Return the path of the first actionstracker.yaml found, or None."""
    candidates = [
        Path("actionstracker.yaml"),
        Path(platformdirs.user_config_dir("actionstracker")) / "actionstracker.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    environment: Literal["production", "development"] = "production"
    # Comma-separated origin list, or "*" for any origin
    allowed_origins: str = "*"

    @property
    def origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


class CacheSettings(BaseModel):
    ttl_seconds: PositiveInt = 300
    store_url: str = _DEFAULT_STORE_URL
    key_prefix: str = "proxyCache"
    cleanup_interval_hours: PositiveInt = 1


class RateLimitSettings(BaseModel):
    points: PositiveInt = 100
    duration: PositiveInt = 60
    block_duration: PositiveInt = 300
    key_prefix: str = "proxyLimiter"


class UpstreamSettings(BaseModel):
    user_agent: str = "WhiteHouseActionsTracker/1.0"
    timeout_seconds: PositiveFloat = 5.0


class ClientSettings(BaseModel):
    proxy_url: str = "http://localhost:3000/proxy"
    feed_url: str = FEED_URL
    cache_path: str = _DEFAULT_CLIENT_CACHE_PATH
    cache_ttl_seconds: PositiveInt = 3600
    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    timeout_seconds: PositiveFloat = 15.0


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: ACTIONSTRACKER__SERVER__PORT=9090
        env_prefix="ACTIONSTRACKER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    cache: CacheSettings = CacheSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    upstream: UpstreamSettings = UpstreamSettings()
    client: ClientSettings = ClientSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
