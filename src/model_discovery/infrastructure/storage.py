"""Persistence of the search cache and search history.

Provides a minimal key-value store interface with two implementations:
- InMemoryStore: dict-backed, for tests and ephemeral sessions
- JsonFileStore: a single JSON file on disk, written atomically

and load/save helpers that (de)serialize cache and history values as JSON
strings. Loading never raises: unreadable data is dropped item by item and a
fully corrupted value degrades to an empty cache or history.

Serialized cache format:
    [{"query": str, "updatedAt": ms, "pages": [
        {"offset": int, "limit": int, "updatedAt": ms, "items": [record, ...]}
    ]}]

The legacy flat shape ``{"query", "updatedAt", "items"}`` is read as a single
page at offset 0.

Example usage:
    store = JsonFileStore(Path("./data/discovery.json"))
    cache = load_search_cache(store, "model-discovery.search-cache")
    ...
    save_search_cache(store, "model-discovery.search-cache", cache)
"""

import json
import math
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from model_discovery.core.history import DEFAULT_HISTORY_SIZE
from model_discovery.core.logging import get_logger
from model_discovery.core.records import dedupe_records
from model_discovery.core.search_cache import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_MAX_ITEMS_PER_PAGE,
    DEFAULT_MAX_PAGES_PER_QUERY,
    CacheEntry,
    CachePage,
    SearchCache,
    normalize_query_key,
    now_ms,
)

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """String key-value store owned by the host application."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...


class InMemoryStore(KeyValueStore):
    """Dict-backed store. Contents are lost with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Store backed by one JSON object file.

    Writes are best effort: I/O errors are logged and the in-memory copy
    stays authoritative for the rest of the session.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data

        data: dict[str, str] = {}
        if self._path.exists():
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable store file", path=str(self._path), error=str(e))
                raw = {}
            if isinstance(raw, dict):
                data = {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}
        self._data = data
        return data

    def _flush(self) -> None:
        data = self._load()
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.warning("Failed to write store file", path=str(self._path), error=str(e))

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._load().pop(key, None) is not None:
            self._flush()


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _read_json(store: KeyValueStore, key: str) -> Any:
    raw = store.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        logger.warning("Discarding malformed persisted value", key=key)
        return None


def _parse_page(raw: Any, max_items_per_page: int) -> CachePage | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("items"), list):
        return None

    items = dedupe_records(raw["items"])[:max_items_per_page]
    if not items:
        return None

    offset = raw.get("offset")
    limit = raw.get("limit")
    updated_at = raw.get("updatedAt")
    return CachePage(
        offset=math.floor(offset) if _is_number(offset) and offset >= 0 else 0,
        limit=math.floor(limit) if _is_number(limit) and limit >= 1 else max(1, len(items)),
        updated_at=int(updated_at) if _is_number(updated_at) else now_ms(),
        items=tuple(items),
    )


def _parse_entry(
    raw: Any,
    max_pages_per_query: int,
    max_items_per_page: int,
) -> CacheEntry | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("query"), str):
        return None

    pages: dict[int, CachePage] = {}
    raw_pages = raw.get("pages")
    if isinstance(raw_pages, list):
        for raw_page in raw_pages:
            page = _parse_page(raw_page, max_items_per_page)
            # first page read wins for a given offset
            if page is not None and page.offset not in pages:
                pages[page.offset] = page

    if not pages and isinstance(raw.get("items"), list):
        legacy = _parse_page(
            {
                "offset": 0,
                "limit": max_items_per_page,
                "updatedAt": raw.get("updatedAt"),
                "items": raw["items"],
            },
            max_items_per_page,
        )
        if legacy is not None:
            pages[0] = legacy

    if not pages:
        return None

    ordered = tuple(sorted(pages.values(), key=lambda p: p.offset)[:max_pages_per_query])
    updated_at = raw.get("updatedAt")
    return CacheEntry(
        query=normalize_query_key(raw["query"]),
        updated_at=int(updated_at) if _is_number(updated_at) else max(p.updated_at for p in ordered),
        pages=ordered,
    )


def load_search_cache(
    store: KeyValueStore,
    key: str,
    max_entries: int = DEFAULT_MAX_ENTRIES,
    max_pages_per_query: int = DEFAULT_MAX_PAGES_PER_QUERY,
    max_items_per_page: int = DEFAULT_MAX_ITEMS_PER_PAGE,
) -> SearchCache:
    """Read a cache previously written by :func:`save_search_cache`.

    Args:
        store: Key-value store to read from.
        key: Store key holding the serialized cache.
        max_entries: Maximum number of entries to keep.
        max_pages_per_query: Maximum pages kept per entry.
        max_items_per_page: Maximum records kept per page.

    Returns:
        The restored cache; an empty cache when nothing usable is stored.
    """
    parsed = _read_json(store, key)
    if not isinstance(parsed, list):
        return SearchCache()

    entries: list[CacheEntry] = []
    seen: set[str] = set()
    for raw_entry in parsed:
        entry = _parse_entry(raw_entry, max_pages_per_query, max_items_per_page)
        if entry is None or entry.query in seen:
            continue
        seen.add(entry.query)
        entries.append(entry)

    dropped = len(parsed) - len(entries)
    if dropped:
        logger.debug("Dropped unreadable cache entries", key=key, dropped=dropped)
    return SearchCache(entries=tuple(entries[:max_entries]))


def serialize_search_cache(cache: SearchCache, max_entries: int = DEFAULT_MAX_ENTRIES) -> str:
    return json.dumps(
        [
            {
                "query": entry.query,
                "updatedAt": entry.updated_at,
                "pages": [
                    {
                        "offset": page.offset,
                        "limit": page.limit,
                        "updatedAt": page.updated_at,
                        "items": [record.to_raw() for record in page.items],
                    }
                    for page in entry.pages
                ],
            }
            for entry in cache.entries[:max_entries]
        ]
    )


def save_search_cache(
    store: KeyValueStore,
    key: str,
    cache: SearchCache,
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> None:
    """Write the first ``max_entries`` entries of ``cache`` to ``store``."""
    store.set(key, serialize_search_cache(cache, max_entries))


def load_search_history(
    store: KeyValueStore,
    key: str,
    max_items: int = DEFAULT_HISTORY_SIZE,
) -> list[str]:
    """Read saved queries, skipping anything that is not a non-blank string."""
    parsed = _read_json(store, key)
    if not isinstance(parsed, list):
        return []
    history = [item for item in parsed if isinstance(item, str) and item.strip()]
    return history[:max_items]


def save_search_history(
    store: KeyValueStore,
    key: str,
    history: list[str],
    max_items: int = DEFAULT_HISTORY_SIZE,
) -> None:
    store.set(key, json.dumps(history[:max_items]))
