"""Recent search queries, most recent first."""

from collections.abc import Sequence

DEFAULT_HISTORY_SIZE = 10


def _normalize(query: str) -> str:
    return query.strip().lower()


def update_search_history(
    history: Sequence[str],
    query: str,
    max_items: int = DEFAULT_HISTORY_SIZE,
) -> list[str]:
    """Move ``query`` to the front of ``history``.

    The query is stored trimmed and lowercased; earlier entries equal to it
    (case-insensitively) are removed. Blank queries leave the history as is.

    Example:
        >>> update_search_history(["mistral", "llama", "phi"], "llama", 5)
        ['llama', 'mistral', 'phi']
    """
    limit = max(0, max_items)
    normalized = _normalize(query)
    if not normalized:
        return list(history[:limit])
    rest = [item for item in history if _normalize(item) != normalized]
    return [normalized, *rest][:limit]
