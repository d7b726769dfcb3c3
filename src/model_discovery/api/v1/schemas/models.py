"""Model search schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from model_discovery.core.filters import SearchFilters
from model_discovery.core.records import ModelRecord


class ModelSearchRequest(BaseModel):
    """Request schema for a cached catalog search."""

    query: str = Field(
        default="",
        max_length=200,
        description="Search query; empty lists trending models",
    )
    offset: int = Field(default=0, ge=0, description="Page offset")
    limit: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Page size requested from the catalog",
    )
    filters: SearchFilters = Field(
        default_factory=SearchFilters,
        description="Filters and sort order applied to the page",
    )
    refresh: bool = Field(default=False, description="Bypass the cached page")
    fallback: bool = Field(
        default=True,
        description="Serve cached substitutes when the catalog is unavailable",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "query": "llama",
                    "offset": 0,
                    "limit": 20,
                    "filters": {
                        "architectures": ["llama"],
                        "quantization": "Q4_K_M",
                        "size_bucket": "lt4gb",
                        "sort_by": "downloads",
                        "sort_order": "desc",
                    },
                }
            ]
        }
    }


class ModelSearchResponse(BaseModel):
    """Response schema for model search."""

    models: list[ModelRecord] = Field(description="Matching models for the page")
    total: int = Field(description="Number of models returned")
    query: str = Field(description="Normalized search query")
    offset: int = Field(description="Page offset")
    source: Literal["cache", "catalog", "fallback"] = Field(
        description="Where the models came from"
    )
    cached: bool = Field(default=False, description="Whether the catalog was skipped")
    error: str | None = Field(default=None, description="Catalog error behind a fallback")


class SearchHistoryResponse(BaseModel):
    """Recent search queries, most recent first."""

    queries: list[str] = Field(default_factory=list)


class CacheImportRequest(BaseModel):
    """Request schema for storing a complete result list in the cache."""

    query: str = Field(
        default="",
        max_length=200,
        description="Query the results belong to; empty stores trending models",
    )
    models: list[Any] = Field(
        description="Model records, e.g. the models of an earlier search response"
    )
