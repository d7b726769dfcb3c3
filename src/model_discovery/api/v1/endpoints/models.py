"""Model search endpoints backed by the paginated discovery cache."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from model_discovery.api.v1.schemas.models import (
    CacheImportRequest,
    ModelSearchRequest,
    ModelSearchResponse,
    SearchHistoryResponse,
)
from model_discovery.core.discovery import DiscoveryResult, resolve_query
from model_discovery.core.exceptions import CatalogError, CatalogTimeoutError
from model_discovery.core.filters import SearchFilters
from model_discovery.core.logging import bind_context, clear_context
from model_discovery.core.search_cache import normalize_query
from model_discovery.dependencies import get_discovery_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["models"])


def _to_response(result: DiscoveryResult) -> ModelSearchResponse:
    return ModelSearchResponse(
        models=result.records,
        total=len(result.records),
        query=result.query,
        offset=result.offset,
        source=result.source,
        cached=result.cached,
        error=result.error,
    )


@router.post("/models/search", response_model=ModelSearchResponse)
async def search_models(request: ModelSearchRequest) -> ModelSearchResponse:
    """Search the model catalog through the discovery cache.

    Pages already cached for (query, offset) are served without a catalog
    call. When the catalog fails, cached or fuzzy-matched models are
    returned instead if any exist.

    Args:
        request: Search request with query, page window and filters.

    Returns:
        ModelSearchResponse with the filtered page.

    Raises:
        HTTPException: 504 on catalog timeout, 502 on other catalog errors,
            when no cached substitute exists.
    """
    service = get_discovery_service()
    bind_context(search_query=request.query, search_offset=request.offset)
    try:
        result = await service.search(
            request.query,
            request.filters,
            offset=request.offset,
            limit=request.limit,
            refresh=request.refresh,
            use_fallback=request.fallback,
        )
    except CatalogTimeoutError:
        raise HTTPException(status_code=504, detail="Model catalog timeout")
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=f"Model catalog error: {e}")
    finally:
        clear_context()

    logger.info(
        "Model search completed: query=%s, offset=%d, source=%s, results=%d",
        result.query,
        result.offset,
        result.source,
        len(result.records),
    )
    return _to_response(result)


@router.get("/models/search", response_model=ModelSearchResponse)
async def search_models_get(
    query: str = Query(default="", max_length=200, description="Search query"),
    offset: int = Query(default=0, ge=0, description="Page offset"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size"),
    architecture: list[str] = Query(default=[], description="Architecture filter (repeatable)"),
    quantization: str = Query(default="any", description="Quantization filter, e.g. Q4_K_M"),
    size_bucket: str = Query(default="any", description="any, lt4gb, 4to8gb or gt8gb"),
    min_downloads: int = Query(default=0, ge=0, description="Minimum downloads"),
    sort_by: str = Query(default="downloads", description="downloads, likes, updated, file_size"),
    sort_order: str = Query(default="desc", description="asc or desc"),
) -> ModelSearchResponse:
    """Search the model catalog (GET endpoint).

    Same as the POST endpoint with the most common filters as query
    parameters, for browser and UI integration.
    """
    try:
        filters = SearchFilters(
            architectures=architecture,
            quantization=quantization,
            size_bucket=size_bucket,  # type: ignore[arg-type]
            min_downloads=min_downloads,
            sort_by=sort_by,  # type: ignore[arg-type]
            sort_order=sort_order,  # type: ignore[arg-type]
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    request = ModelSearchRequest(query=query, offset=offset, limit=limit, filters=filters)
    return await search_models(request)


@router.get("/models/history", response_model=SearchHistoryResponse)
async def get_search_history() -> SearchHistoryResponse:
    """Recent search queries, most recent first."""
    return SearchHistoryResponse(queries=get_discovery_service().history)


@router.delete("/models/cache")
async def clear_model_cache(
    query: str | None = Query(default=None, description="Only clear this query"),
) -> dict[str, str]:
    """Clear the model search cache.

    Removes the cached pages of one query, or of every query when none is
    given, and persists the result.

    Returns:
        Confirmation message with count of cleared entries.
    """
    service = get_discovery_service()
    if query is not None:
        count = 1 if service.forget_query(query) else 0
    else:
        count = service.clear_cache()
    service.flush()
    return {"status": "ok", "message": f"Cleared {count} cached model searches"}


@router.get("/models/cache/stats")
async def get_cache_stats() -> dict[str, Any]:
    """Get model search cache statistics.

    Returns:
        Entry and item counts, configured limits and per-query page details.
    """
    return get_discovery_service().stats()


@router.get("/models/cache/results", response_model=ModelSearchResponse)
async def get_cached_results(
    query: str = Query(default="", max_length=200, description="Cached query"),
) -> ModelSearchResponse:
    """Every cached model for a query, across all of its cached pages.

    Never calls the catalog. An unknown query returns an empty list.
    """
    records = get_discovery_service().cached_results(query)
    return ModelSearchResponse(
        models=records,
        total=len(records),
        query=normalize_query(resolve_query(query)),
        offset=0,
        source="cache",
        cached=True,
    )


@router.put("/models/cache/results")
async def import_cached_results(request: CacheImportRequest) -> dict[str, Any]:
    """Store a complete result list for a query, replacing its cached pages.

    Invalid records are dropped. Nothing changes when none is valid.
    """
    service = get_discovery_service()
    stored = service.import_results(request.query, request.models)
    if stored:
        service.flush()
    return {"status": "ok", "stored": stored}
