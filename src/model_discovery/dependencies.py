"""Dependency injection for the model discovery service."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from model_discovery.config import Settings, get_settings
from model_discovery.core.discovery import ModelDiscoveryService
from model_discovery.infrastructure.catalog import HuggingFaceCatalog
from model_discovery.infrastructure.storage import JsonFileStore, KeyValueStore


@lru_cache
def get_catalog() -> HuggingFaceCatalog:
    """Get the HuggingFace catalog client singleton."""
    settings = get_settings()
    return HuggingFaceCatalog(
        api_url=settings.hf_api_url,
        token=settings.hf_token,
        timeout=settings.hf_timeout,
    )


@lru_cache
def get_store() -> KeyValueStore:
    """Get the persistent key-value store singleton."""
    return JsonFileStore(get_settings().store_path)


@lru_cache
def get_discovery_service() -> ModelDiscoveryService:
    """Get the session discovery service singleton (not hydrated)."""
    settings = get_settings()
    return ModelDiscoveryService(
        catalog_search=get_catalog().search,
        store=get_store(),
        limits=settings.cache_limits(),
        cache_key=settings.search_cache_key,
        history_key=settings.search_history_key,
    )


# Type alias for cleaner endpoint signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]
