"""Health check and service info endpoints."""

from typing import Any

from fastapi import APIRouter

from model_discovery import __version__
from model_discovery.dependencies import SettingsDep, get_discovery_service

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness probe endpoint.

    Returns:
        Simple health status.
    """
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness probe endpoint.

    Ready once the discovery service can be constructed.

    Returns:
        Readiness status.
    """
    try:
        _ = get_discovery_service()
        return {"status": "ready"}
    except Exception as e:
        return {"status": "not_ready", "error": str(e)}


@router.get("/info")
async def system_info(settings: SettingsDep) -> dict[str, Any]:
    """Get service information.

    Returns:
        Version, catalog endpoint, cache limits and current cache size.
    """

    info: dict[str, Any] = {
        "version": __version__,
        "config": {
            "catalog_url": settings.hf_api_url,
            "authenticated": bool(settings.hf_token),
            "store_path": str(settings.store_path),
            "default_page_size": settings.default_page_size,
        },
    }

    try:
        service = get_discovery_service()
        stats = service.stats()
        info["cache"] = {
            "entries": stats["entries"],
            "items": stats["items"],
            "max_entries": stats["max_entries"],
            "history": len(service.history),
        }
    except Exception as e:
        info["cache"] = {"error": str(e)}

    return info
