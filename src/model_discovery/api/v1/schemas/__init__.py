"""API v1 schemas package."""

from model_discovery.api.v1.schemas.models import (
    CacheImportRequest,
    ModelSearchRequest,
    ModelSearchResponse,
    SearchHistoryResponse,
)

__all__ = [
    "CacheImportRequest",
    "ModelSearchRequest",
    "ModelSearchResponse",
    "SearchHistoryResponse",
]
