"""Lightweight lexical similarity index.

Used to rank cached model records against a free-text query when no exact
cache entry exists (e.g. while offline). Scoring is purely token based:

- 8 points when a document token equals a query token
- 5 points when a document token starts with a query token
- 2 points when a document token contains a query token

Only the best matching rule counts for each (query token, document token)
pair and a document's score is the sum over all pairs.
"""

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass

EXACT_SCORE = 8
PREFIX_SCORE = 5
SUBSTRING_SCORE = 2

DEFAULT_SEARCH_LIMIT = 50

# \w also matches "_", which is not a letter or number
_NON_WORD = re.compile(r"[^\w\s]+|_+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SimSearchDoc:
    """A document to index."""

    id: str
    text: str


@dataclass(frozen=True)
class SimSearchHit:
    """A scored search hit."""

    id: str
    score: int


def normalize_text(text: str) -> str:
    """Lowercase, decompose and strip everything but letters, numbers and spaces."""
    value = unicodedata.normalize("NFKD", text.lower())
    value = _NON_WORD.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()


def _tokenize(text: str) -> list[str]:
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


def _pair_score(query_token: str, token: str) -> int:
    if token == query_token:
        return EXACT_SCORE
    if token.startswith(query_token):
        return PREFIX_SCORE
    if query_token in token:
        return SUBSTRING_SCORE
    return 0


class SimSearch:
    """In-memory token index over ``{id, text}`` documents."""

    def __init__(self, entries: Iterable[SimSearchDoc] = ()) -> None:
        self._docs: dict[str, list[str]] = {}
        for entry in entries:
            self.insert(entry.id, entry.text)

    def __len__(self) -> int:
        return len(self._docs)

    def insert(self, doc_id: str, text: str) -> None:
        """Index ``text`` under ``doc_id``, replacing any previous text for that id."""
        self._docs[doc_id] = _tokenize(text)

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[SimSearchHit]:
        """Score every document against ``query``.

        Args:
            query: Free-text query.
            limit: Maximum number of hits to return.

        Returns:
            Hits with a positive score, highest first. Documents with equal
            scores keep their insertion order.
        """
        query_tokens = _tokenize(query)
        if not query_tokens or limit <= 0:
            return []

        hits: list[SimSearchHit] = []
        for doc_id, tokens in self._docs.items():
            if not tokens:
                continue
            score = sum(_pair_score(qt, token) for qt in query_tokens for token in tokens)
            if score > 0:
                hits.append(SimSearchHit(id=doc_id, score=score))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]
