"""Substitute results when a live catalog query is unavailable.

Tiers are tried in order and the first non-empty one wins:

1. empty query     -> the trending entry, else the most recently written entry
2. non-empty query -> the exact cache entry for that query (all pages)
3. non-empty query -> fuzzy lexical search over everything cached
"""

from collections.abc import Sequence

from model_discovery.core.logging import get_logger
from model_discovery.core.records import ModelRecord, dedupe_records
from model_discovery.core.search_cache import (
    TRENDING_KEY,
    SearchCache,
    flatten_entry,
    get_query_results,
    normalize_query,
)
from model_discovery.core.simsearch import SimSearch, SimSearchDoc

logger = get_logger(__name__)

DEFAULT_FUZZY_LIMIT = 30


def _search_text(record: ModelRecord) -> str:
    return " ".join(
        [
            record.repo_id,
            record.name,
            record.author or "",
            record.description or "",
            " ".join(record.languages),
            " ".join(record.tags),
            " ".join(record.quantizations),
        ]
    )


def apply_fuzzy_fallback(
    records: Sequence[ModelRecord],
    query: str,
    limit: int = 20,
) -> list[ModelRecord]:
    """Rank ``records`` against ``query`` with the lexical index.

    Args:
        records: Candidate records (assumed deduplicated).
        query: Free-text query.
        limit: Maximum number of records to return.

    Returns:
        Matching records, best score first. An empty query returns the first
        ``limit`` records unchanged.
    """
    if not normalize_query(query):
        return list(records[:limit])
    if not records:
        return []

    index = SimSearch(SimSearchDoc(id=record.repo_id, text=_search_text(record)) for record in records)
    by_id = {record.repo_id: record for record in records}
    hits = index.search(query, limit=max(limit, len(records)))
    return [by_id[hit.id] for hit in hits if hit.id in by_id][:limit]


def get_fallback(
    cache: SearchCache,
    query: str,
    fuzzy_limit: int = DEFAULT_FUZZY_LIMIT,
) -> list[ModelRecord]:
    """Best available cached substitute for ``query``.

    Args:
        cache: Current cache value.
        query: Raw user query.
        fuzzy_limit: Maximum number of records returned by any tier.

    Returns:
        Records from the first non-empty tier, or an empty list.
    """
    if not cache.entries:
        return []

    normalized = normalize_query(query)
    if not normalized:
        trending = get_query_results(cache, TRENDING_KEY, fuzzy_limit)
        if trending:
            return trending
        return flatten_entry(cache.entries[0], fuzzy_limit)

    exact = get_query_results(cache, normalized, fuzzy_limit)
    if exact:
        return exact

    candidates = dedupe_records(
        record for entry in cache.entries for record in flatten_entry(entry, entry.item_count)
    )
    hits = apply_fuzzy_fallback(candidates, normalized, fuzzy_limit)
    logger.debug("Fuzzy cache fallback", query=normalized, candidates=len(candidates), hits=len(hits))
    return hits
