"""Configuration management with YAML file support.

Priority (highest to lowest):
1. Environment variables
2. .env file
3. config.yaml file
4. Default values
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore[import-untyped]
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from model_discovery.core.discovery import CacheLimits

logger = logging.getLogger(__name__)

# Default config file locations (checked in order)
CONFIG_FILE_LOCATIONS = [
    Path("config.yaml"),
    Path("config.yml"),
    Path("./config/config.yaml"),
]


def find_config_file() -> Path | None:
    """Find the first existing config file.

    Returns:
        Path to config file if found, None otherwise.
    """
    for path in CONFIG_FILE_LOCATIONS:
        if path.exists():
            return path
    return None


def load_yaml_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Optional explicit path to config file.

    Returns:
        Dictionary of configuration values; empty if missing or unreadable.
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.warning(f"Ignoring config file {config_path}: top level is not a mapping")
        return {}
    logger.info(f"Loaded configuration from {config_path}")
    return config


class Settings(BaseSettings):
    """Application settings with YAML and environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # HuggingFace Hub Configuration
    hf_api_url: str = Field(
        default="https://huggingface.co/api/models",
        description="HuggingFace model listing endpoint",
    )
    hf_token: str | None = Field(
        default=None,
        description="HuggingFace API token for higher rate limits (optional)",
    )
    hf_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Catalog request timeout in seconds",
    )
    default_page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Default number of models requested per catalog page",
    )

    # Search Cache Configuration
    cache_max_entries: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Maximum number of cached queries",
    )
    cache_max_pages_per_query: int = Field(
        default=8,
        ge=1,
        le=100,
        description="Maximum number of cached pages per query",
    )
    cache_max_items_per_page: int = Field(
        default=60,
        ge=1,
        le=1000,
        description="Maximum number of models stored per cached page",
    )
    cache_max_query_results: int = Field(
        default=120,
        ge=1,
        le=5000,
        description="Maximum number of models returned when flattening a query",
    )
    fallback_fuzzy_limit: int = Field(
        default=30,
        ge=1,
        le=500,
        description="Maximum number of models served by the offline fallback",
    )
    history_max_items: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Number of recent queries to remember",
    )

    # Persistence Configuration
    store_path: Path = Field(
        default=Path("./data/discovery_store.json"),
        description="JSON file holding the persisted cache and history",
    )
    search_cache_key: str = Field(
        default="model-discovery.search-cache",
        description="Store key for the search cache",
    )
    search_history_key: str = Field(
        default="model-discovery.search-history",
        description="Store key for the search history",
    )

    # API Configuration
    host: str = Field(default="127.0.0.1", description="API host")
    port: int = Field(default=8090, ge=1, le=65535, description="API port")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="CORS allowed origins",
    )
    api_prefix: str = Field(default="/api/v1", description="API route prefix")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log renderer: json for aggregation, console for humans",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("store_path", mode="before")
    @classmethod
    def parse_path(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v

    def cache_limits(self) -> CacheLimits:
        """Bounds for the discovery service derived from these settings."""
        return CacheLimits(
            max_entries=self.cache_max_entries,
            max_pages_per_query=self.cache_max_pages_per_query,
            max_items_per_page=self.cache_max_items_per_page,
            max_query_results=self.cache_max_query_results,
            fuzzy_limit=self.fallback_fuzzy_limit,
            history_size=self.history_max_items,
        )


def _create_settings_with_yaml() -> Settings:
    """Create Settings instance with YAML config as base.

    pydantic-settings reads UPPER_SNAKE_CASE environment variables; those
    override values from the YAML file.
    """
    yaml_config = load_yaml_config()

    env_overrides = {}
    for field_name in Settings.model_fields:
        env_name = field_name.upper()
        if env_name in os.environ:
            env_overrides[field_name] = os.environ[env_name]

    merged_config = {**yaml_config, **env_overrides}

    # Empty strings from env are treated as "not set"
    merged_config = {k: v for k, v in merged_config.items() if v != ""}

    if merged_config:
        return Settings(**merged_config)

    return Settings()


# Cache for settings - can be cleared to reload
_settings_cache: Settings | None = None


def get_settings() -> Settings:
    """Get application settings (cached).

    Returns:
        Settings: Application settings instance.
    """
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = _create_settings_with_yaml()
    return _settings_cache


def reload_settings() -> Settings:
    """Force reload settings from config files and environment.

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings_cache
    _settings_cache = None
    return get_settings()
