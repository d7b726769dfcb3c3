"""Paginated, query-keyed cache of catalog search results.

The cache is an immutable value. Every write returns a new
:class:`SearchCache` and leaves the previous one untouched, so a reader
holding an older reference always sees a consistent snapshot.

Structure:
    SearchCache.entries   -- one CacheEntry per normalized query, most recently
                             written first, at most ``max_entries``
    CacheEntry.pages      -- one CachePage per fetch offset, sorted by offset,
                             at most ``max_pages_per_query``
    CachePage.items       -- deduplicated records, at most ``max_items_per_page``

Example usage:
    cache = SearchCache()
    cache = upsert_page(cache, "llama", offset=0, limit=20, items=page_one)
    cache = upsert_page(cache, "llama", offset=20, limit=20, items=page_two)
    records = get_query_results(cache, "Llama")  # both pages, offset order
"""

import math
import time
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from model_discovery.core.records import ModelRecord, dedupe_records

TRENDING_KEY = "__trending__"

DEFAULT_MAX_ENTRIES = 20
DEFAULT_MAX_PAGES_PER_QUERY = 8
DEFAULT_MAX_ITEMS_PER_PAGE = 60
DEFAULT_MAX_ITEMS_PER_QUERY = 50
DEFAULT_MAX_QUERY_RESULTS = 120


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def normalize_query(query: str) -> str:
    return query.strip().lower()


def normalize_query_key(query: str) -> str:
    """Map a user query to its cache key; an empty query maps to the trending key."""
    return normalize_query(query) or TRENDING_KEY


def floor_non_negative(value: float) -> int:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    return max(0, math.floor(value))


class CachePage(BaseModel):
    """One fetched window of results for a query."""

    model_config = ConfigDict(frozen=True)

    offset: int = Field(ge=0)
    limit: int = Field(ge=1)
    updated_at: int = Field(description="Last write time in epoch milliseconds")
    items: tuple[ModelRecord, ...] = ()


class CacheEntry(BaseModel):
    """All cached pages for one normalized query key."""

    model_config = ConfigDict(frozen=True)

    query: str
    updated_at: int
    pages: tuple[CachePage, ...] = ()

    def find_page(self, offset: int) -> CachePage | None:
        for page in self.pages:
            if page.offset == offset:
                return page
        return None

    @property
    def item_count(self) -> int:
        return sum(len(page.items) for page in self.pages)


class SearchCache(BaseModel):
    """Top-level cache value: entries ordered most recently written first."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[CacheEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def find(self, query: str) -> CacheEntry | None:
        """Look up the entry for ``query`` (normalized before lookup)."""
        key = normalize_query_key(query)
        for entry in self.entries:
            if entry.query == key:
                return entry
        return None


def _merge_pages(
    previous: Iterable[CachePage],
    page: CachePage,
    max_pages: int,
) -> tuple[CachePage, ...]:
    # Evict least recently written pages first; the page being written
    # always survives. Ties keep the previous offset order.
    others = [p for p in previous if p.offset != page.offset]
    others.sort(key=lambda p: p.updated_at, reverse=True)
    kept = [page, *others][: max(1, max_pages)]
    return tuple(sorted(kept, key=lambda p: p.offset))


def upsert_page(
    cache: SearchCache,
    query: str,
    offset: float,
    limit: float,
    items: Iterable[Any],
    max_entries: int = DEFAULT_MAX_ENTRIES,
    max_pages_per_query: int = DEFAULT_MAX_PAGES_PER_QUERY,
    max_items_per_page: int = DEFAULT_MAX_ITEMS_PER_PAGE,
) -> SearchCache:
    """Store one page of results for ``query``.

    Args:
        cache: Current cache value.
        query: Raw user query; normalized into the cache key.
        offset: Offset of the fetch window (floored, clamped to >= 0).
        limit: Page size that was requested.
        items: Raw or sanitized records returned by the catalog.
        max_entries: Maximum number of queries kept in the cache.
        max_pages_per_query: Maximum number of pages kept per query.
        max_items_per_page: Maximum number of records stored in the page.

    Returns:
        A new cache value, or ``cache`` itself when no valid item was given.
    """
    records = dedupe_records(items)[: max(0, max_items_per_page)]
    if not records:
        return cache

    key = normalize_query_key(query)
    written_at = now_ms()
    page = CachePage(
        offset=floor_non_negative(offset),
        limit=max(1, floor_non_negative(limit)),
        updated_at=written_at,
        items=tuple(records),
    )

    previous = cache.find(key)
    entry = CacheEntry(
        query=key,
        updated_at=written_at,
        pages=_merge_pages(previous.pages if previous else (), page, max_pages_per_query),
    )
    others = tuple(e for e in cache.entries if e.query != key)
    return SearchCache(entries=((entry,) + others)[: max(1, max_entries)])


def upsert_query(
    cache: SearchCache,
    query: str,
    items: Iterable[Any],
    max_entries: int = DEFAULT_MAX_ENTRIES,
    max_items_per_query: int = DEFAULT_MAX_ITEMS_PER_QUERY,
) -> SearchCache:
    """Store a whole, unpaginated result list for ``query`` as a single page."""
    return upsert_page(
        cache,
        query,
        0,
        max_items_per_query,
        items,
        max_entries=max_entries,
        max_pages_per_query=1,
        max_items_per_page=max_items_per_query,
    )


def get_page(cache: SearchCache, query: str, offset: float) -> list[ModelRecord]:
    """Return the page cached at exactly (``query``, ``offset``), or an empty list."""
    entry = cache.find(query)
    if entry is None:
        return []
    page = entry.find_page(floor_non_negative(offset))
    return list(page.items) if page else []


def flatten_entry(entry: CacheEntry, max_items: int) -> list[ModelRecord]:
    """Concatenate an entry's pages in offset order, deduplicated by repo id."""
    result: list[ModelRecord] = []
    seen: set[str] = set()
    if max_items <= 0:
        return result
    for page in sorted(entry.pages, key=lambda p: p.offset):
        for record in page.items:
            if record.repo_id in seen:
                continue
            seen.add(record.repo_id)
            result.append(record)
            if len(result) >= max_items:
                return result
    return result


def get_query_results(
    cache: SearchCache,
    query: str,
    max_items: int = DEFAULT_MAX_QUERY_RESULTS,
) -> list[ModelRecord]:
    """Return every cached record for ``query`` across all of its pages."""
    entry = cache.find(query)
    if entry is None:
        return []
    return flatten_entry(entry, max_items)


def clear_query(cache: SearchCache, query: str) -> SearchCache:
    """Drop the entry for ``query``; returns ``cache`` itself when absent."""
    key = normalize_query_key(query)
    if cache.find(key) is None:
        return cache
    return SearchCache(entries=tuple(e for e in cache.entries if e.query != key))


def cache_stats(cache: SearchCache, now: int | None = None) -> dict[str, Any]:
    """Summarize the cache for diagnostics.

    Returns:
        Entry count, total records, and per-entry page/item counts and ages.
    """
    current = now_ms() if now is None else now
    entries = [
        {
            "query": entry.query,
            "pages": len(entry.pages),
            "offsets": [page.offset for page in entry.pages],
            "items": entry.item_count,
            "age_seconds": max(0, (current - entry.updated_at) // 1000),
        }
        for entry in cache.entries
    ]
    return {
        "entries": len(cache.entries),
        "items": sum(entry["items"] for entry in entries),
        "queries": entries,
    }
