"""Discovery service: cached, paginated model search with offline fallback.

Owns the single current :class:`SearchCache` value and the search history
for an application session. Reads always go to the cache first; on a miss
the external catalog is awaited and its page is written into the cache.
When the catalog fails or returns nothing, cached substitutes are served.

Example usage:
    catalog = HuggingFaceCatalog(token=settings.hf_token)
    service = ModelDiscoveryService(catalog.search, store=JsonFileStore(path))
    service.hydrate()

    result = await service.search("mistral", SearchFilters(quantization="Q4_K_M"))
    for record in result.records:
        print(record.repo_id)

    service.flush()
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from model_discovery.core.exceptions import CatalogError
from model_discovery.core.fallback import DEFAULT_FUZZY_LIMIT, get_fallback
from model_discovery.core.filters import SearchFilters, apply_filters, extract_repo_from_hf_url
from model_discovery.core.history import DEFAULT_HISTORY_SIZE, update_search_history
from model_discovery.core.logging import get_logger
from model_discovery.core.records import ModelRecord
from model_discovery.core.search_cache import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_MAX_ITEMS_PER_PAGE,
    DEFAULT_MAX_PAGES_PER_QUERY,
    DEFAULT_MAX_QUERY_RESULTS,
    SearchCache,
    cache_stats,
    clear_query,
    get_page,
    get_query_results,
    normalize_query,
    normalize_query_key,
    upsert_page,
    upsert_query,
)
from model_discovery.infrastructure.catalog import CatalogSearch
from model_discovery.infrastructure.storage import (
    KeyValueStore,
    load_search_cache,
    load_search_history,
    save_search_cache,
    save_search_history,
)

logger = get_logger(__name__)

ResultSource = Literal["cache", "catalog", "fallback"]

SEARCH_CACHE_KEY = "model-discovery.search-cache"
SEARCH_HISTORY_KEY = "model-discovery.search-history"


def resolve_query(query: str) -> str:
    """Replace a pasted huggingface.co model URL with its repo id."""
    parsed = extract_repo_from_hf_url(query)
    return parsed[0] if parsed else query


@dataclass(frozen=True)
class CacheLimits:
    """Bounds applied to the search cache and its readers."""

    max_entries: int = DEFAULT_MAX_ENTRIES
    max_pages_per_query: int = DEFAULT_MAX_PAGES_PER_QUERY
    max_items_per_page: int = DEFAULT_MAX_ITEMS_PER_PAGE
    max_query_results: int = DEFAULT_MAX_QUERY_RESULTS
    fuzzy_limit: int = DEFAULT_FUZZY_LIMIT
    history_size: int = DEFAULT_HISTORY_SIZE


@dataclass(frozen=True)
class DiscoveryResult:
    """Outcome of one search call."""

    query: str
    offset: int
    limit: int
    source: ResultSource
    records: list[ModelRecord] = field(default_factory=list)
    fetched: int = 0
    error: str | None = None

    @property
    def cached(self) -> bool:
        return self.source != "catalog"


class ModelDiscoveryService:
    """Session-scoped owner of the search cache and history."""

    def __init__(
        self,
        catalog_search: CatalogSearch,
        store: KeyValueStore | None = None,
        limits: CacheLimits | None = None,
        cache_key: str = SEARCH_CACHE_KEY,
        history_key: str = SEARCH_HISTORY_KEY,
    ) -> None:
        """Initialize the service with an empty cache.

        Args:
            catalog_search: Async catalog query function.
            store: Optional persistent store used by hydrate/flush.
            limits: Cache bounds; defaults when omitted.
            cache_key: Store key for the serialized cache.
            history_key: Store key for the serialized history.
        """
        self._catalog_search = catalog_search
        self._store = store
        self._limits = limits or CacheLimits()
        self._cache_key = cache_key
        self._history_key = history_key
        self._cache = SearchCache()
        self._history: list[str] = []

    @property
    def cache(self) -> SearchCache:
        """Current cache snapshot. Never mutated; replaced on every write."""
        return self._cache

    @property
    def history(self) -> list[str]:
        return list(self._history)

    @property
    def limits(self) -> CacheLimits:
        return self._limits

    def hydrate(self) -> None:
        """Load cache and history from the store, if one is configured."""
        if self._store is None:
            return
        limits = self._limits
        self._cache = load_search_cache(
            self._store,
            self._cache_key,
            max_entries=limits.max_entries,
            max_pages_per_query=limits.max_pages_per_query,
            max_items_per_page=limits.max_items_per_page,
        )
        self._history = load_search_history(self._store, self._history_key, limits.history_size)
        logger.info(
            "Discovery cache hydrated",
            entries=len(self._cache),
            history=len(self._history),
        )

    def flush(self) -> None:
        """Write cache and history to the store, if one is configured."""
        if self._store is None:
            return
        save_search_cache(self._store, self._cache_key, self._cache, self._limits.max_entries)
        save_search_history(self._store, self._history_key, self._history, self._limits.history_size)
        logger.debug("Discovery cache flushed", entries=len(self._cache))

    def clear_cache(self) -> int:
        """Drop every cached entry. Returns how many entries were removed."""
        count = len(self._cache)
        self._cache = SearchCache()
        logger.info("Cleared discovery cache", entries=count)
        return count

    def forget_query(self, query: str) -> bool:
        """Drop the cached pages of one query. Returns False if none were cached."""
        updated = clear_query(self._cache, query)
        if updated is self._cache:
            return False
        self._cache = updated
        logger.info("Cleared cached query", query=normalize_query_key(query))
        return True

    def record_query(self, query: str) -> list[str]:
        """Add ``query`` to the search history and return the new history."""
        self._history = update_search_history(self._history, query, self._limits.history_size)
        return self.history

    def cached_results(self, query: str) -> list[ModelRecord]:
        """All cached records for ``query`` across its pages."""
        return get_query_results(self._cache, resolve_query(query), self._limits.max_query_results)

    def import_results(self, query: str, items: Iterable[Any]) -> int:
        """Cache a whole, unpaginated result list for ``query``.

        Replaces whatever was cached for the query with a single page at
        offset 0. Returns how many valid records were stored.
        """
        query = resolve_query(query)
        updated = upsert_query(
            self._cache,
            query,
            items,
            max_entries=self._limits.max_entries,
            max_items_per_query=self._limits.max_query_results,
        )
        if updated is self._cache:
            return 0
        self._cache = updated
        stored = len(get_page(updated, query, 0))
        logger.info("Imported cached results", query=normalize_query_key(query), items=stored)
        return stored

    def stats(self) -> dict[str, object]:
        return {
            **cache_stats(self._cache),
            "max_entries": self._limits.max_entries,
            "max_pages_per_query": self._limits.max_pages_per_query,
            "max_items_per_page": self._limits.max_items_per_page,
        }

    def fallback(self, query: str) -> list[ModelRecord]:
        return get_fallback(self._cache, query, self._limits.fuzzy_limit)

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        offset: int = 0,
        limit: int = 20,
        refresh: bool = False,
        use_fallback: bool = True,
    ) -> DiscoveryResult:
        """Search the catalog through the cache.

        Args:
            query: User query or huggingface.co model URL; empty lists
                trending models.
            filters: Filter and sort options applied to the page.
            offset: Page offset.
            limit: Page size requested from the catalog.
            refresh: Skip the cached page and query the catalog.
            use_fallback: Serve cached substitutes when the catalog fails
                or returns nothing.

        Returns:
            The filtered page and where it came from.

        Raises:
            CatalogError: If the catalog fails and no fallback is available.
        """
        filters = filters or SearchFilters()
        offset = max(0, offset)
        query = resolve_query(query)
        normalized = normalize_query(query)
        if normalized:
            self.record_query(normalized)

        if not refresh:
            cached = get_page(self._cache, query, offset)
            if cached:
                logger.debug("Search cache hit", query=normalized, offset=offset, items=len(cached))
                return DiscoveryResult(
                    query=normalized,
                    offset=offset,
                    limit=limit,
                    source="cache",
                    records=apply_filters(cached, filters),
                )

        try:
            items = await self._catalog_search(query, filters, offset, limit)
        except CatalogError as e:
            if not use_fallback:
                raise
            substitutes = self.fallback(query)
            if not substitutes:
                raise
            logger.warning(
                "Catalog query failed, serving cached fallback",
                query=normalized,
                error=str(e),
                items=len(substitutes),
            )
            return DiscoveryResult(
                query=normalized,
                offset=offset,
                limit=limit,
                source="fallback",
                records=apply_filters(substitutes, filters),
                error=str(e),
            )

        updated = upsert_page(
            self._cache,
            query,
            offset,
            limit,
            items,
            max_entries=self._limits.max_entries,
            max_pages_per_query=self._limits.max_pages_per_query,
            max_items_per_page=self._limits.max_items_per_page,
        )
        # an unchanged cache means nothing valid came back
        page = get_page(updated, query, offset) if updated is not self._cache else []
        self._cache = updated
        logger.info(
            "Catalog page fetched",
            query=normalized,
            offset=offset,
            received=len(items),
            cached=len(page),
        )

        if not page and use_fallback and offset == 0:
            substitutes = self.fallback(query)
            if substitutes:
                return DiscoveryResult(
                    query=normalized,
                    offset=offset,
                    limit=limit,
                    source="fallback",
                    records=apply_filters(substitutes, filters),
                    fetched=len(items),
                )

        return DiscoveryResult(
            query=normalized,
            offset=offset,
            limit=limit,
            source="catalog",
            records=apply_filters(page, filters),
            fetched=len(items),
        )
