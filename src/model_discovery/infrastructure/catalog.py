"""HuggingFace Hub catalog client.

Implements the catalog query interface used by the discovery service:

    async search(query, filters, offset, limit) -> list[dict]

Each returned dict is a raw model record (see
:func:`model_discovery.core.records.sanitize_record`). Only repositories that
ship GGUF files are returned. Retries and backoff are left to the caller.
"""

import math
import re
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx

from model_discovery.core.exceptions import CatalogResponseError, CatalogTimeoutError
from model_discovery.core.filters import SearchFilters, parse_language
from model_discovery.core.logging import get_logger

logger = get_logger(__name__)

HF_API_URL = "https://huggingface.co/api/models"
HF_BASE_URL = "https://huggingface.co"
MAX_PAGE_SIZE = 1000

CatalogSearch = Callable[[str, SearchFilters | None, int, int], Awaitable[list[dict[str, Any]]]]

_QUANTIZATION_PATTERN = re.compile(r"(Q\d+[_A-Z0-9]*|IQ\d+[_A-Z0-9]*|INT\d+|FP\d+|BF16|F16|F32)", re.IGNORECASE)
_PARAMETER_TOKEN = re.compile(r"^(\d+(?:\.\d+)?)([bm])$")

# Remote sort fields; file size has no server-side equivalent
_SORT_FIELDS = {
    "downloads": "downloads",
    "likes": "likes",
    "updated": "lastModified",
}

_PARAMETER_KEYS = ("parameter_count", "parameterCount", "params", "parameters", "model_size")
_CONTEXT_KEYS = ("context_length", "max_position_embeddings", "model_max_length", "context_window")


def infer_quantization(filename: str) -> str | None:
    """Quantization label embedded in a file name (``model.Q4_K_M.gguf`` -> ``Q4_K_M``)."""
    stem = filename.rsplit("/", 1)[-1]
    if stem.lower().endswith(".gguf"):
        stem = stem[: -len(".gguf")]
    match = _QUANTIZATION_PATTERN.search(stem)
    return match.group(1).upper() if match else None


def _format_number(value: float) -> str:
    if value == int(value):
        return str(int(value))
    rounded = round(value, 1)
    if abs(value - rounded) < 0.05:
        return f"{rounded:.1f}"
    return f"{value:.2f}"


def format_parameter_count(total: int) -> str | None:
    """Format a raw parameter count as ``7B`` / ``350M``."""
    if total <= 0:
        return None
    if total >= 1_000_000_000:
        return f"{_format_number(total / 1_000_000_000)}B"
    if total >= 1_000_000:
        return f"{_format_number(total / 1_000_000)}M"
    return str(total)


def extract_parameter_label(text: str) -> str | None:
    """First ``<number>b`` / ``<number>m`` token in ``text``, normalized."""
    for token in re.split(r"[^0-9A-Za-z.]+", text):
        match = _PARAMETER_TOKEN.match(token.lower())
        if match is None:
            continue
        value = float(match.group(1))
        if value > 0:
            return f"{_format_number(value)}{match.group(2).upper()}"
    return None


def _as_count(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return round(value)


def _card_strings(card: dict[str, Any], key: str) -> list[str]:
    value = card.get(key)
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip() and item.strip() not in items:
                items.append(item.strip())
        return items
    return []


def _entry_license(card: dict[str, Any], tags: list[str]) -> str | None:
    licenses = _card_strings(card, "license")
    if licenses:
        return licenses[0]
    for tag in tags:
        if tag.strip().startswith("license:"):
            value = tag.strip()[len("license:"):].strip()
            if value:
                return value
    return None


def _entry_languages(card: dict[str, Any], tags: list[str]) -> list[str]:
    languages: list[str] = []
    for raw in [*_card_strings(card, "language"), *_card_strings(card, "languages"), *tags]:
        language = parse_language(raw)
        if language and language not in languages:
            languages.append(language)
    return languages


def _entry_parameter_count(card: dict[str, Any], gguf: dict[str, Any]) -> str | None:
    for key in _PARAMETER_KEYS:
        value = card.get(key)
        if isinstance(value, str):
            label = extract_parameter_label(value)
            if label:
                return label
        count = _as_count(value)
        if count is not None:
            return format_parameter_count(count)

    total = _as_count(gguf.get("total"))
    return format_parameter_count(total) if total is not None else None


def _entry_context_length(card: dict[str, Any], gguf: dict[str, Any]) -> int | None:
    length = _as_count(gguf.get("context_length"))
    if length is not None:
        return length
    for key in _CONTEXT_KEYS:
        value = card.get(key)
        count = _as_count(value)
        if count is not None:
            return count
        if isinstance(value, str) and value.strip().isdigit() and int(value.strip()) > 0:
            return int(value.strip())
    return None


def entry_to_raw_record(entry: dict[str, Any]) -> dict[str, Any] | None:
    """Map one HuggingFace ``/api/models`` entry to a raw model record.

    Returns:
        The raw record, or None when the entry has no id or no GGUF files.
    """
    repo_id = entry.get("id") or entry.get("modelId")
    if not isinstance(repo_id, str) or not repo_id:
        return None

    siblings = entry.get("siblings")
    files: list[dict[str, Any]] = []
    for sibling in siblings if isinstance(siblings, list) else []:
        filename = sibling.get("rfilename") if isinstance(sibling, dict) else None
        if not isinstance(filename, str) or not filename.lower().endswith(".gguf"):
            continue
        files.append(
            {
                "filename": filename,
                "size": _as_count(sibling.get("size")),
                "quantization": infer_quantization(filename),
                "download_url": f"{HF_BASE_URL}/{repo_id}/resolve/main/{quote(filename)}",
            }
        )
    if not files:
        return None

    card = entry.get("cardData") if isinstance(entry.get("cardData"), dict) else {}
    gguf = entry.get("gguf") if isinstance(entry.get("gguf"), dict) else {}
    raw_tags = entry.get("tags")
    tags = [tag for tag in raw_tags if isinstance(tag, str)] if isinstance(raw_tags, list) else []
    description = card.get("description")

    quantizations: list[str] = []
    for file in files:
        if file["quantization"] and file["quantization"] not in quantizations:
            quantizations.append(file["quantization"])

    architecture = gguf.get("architecture")
    return {
        "repo_id": repo_id,
        "name": repo_id.split("/")[-1],
        "author": entry.get("author") or repo_id.split("/")[0],
        "description": description if isinstance(description, str) else None,
        "license": _entry_license(card, tags),
        "pipeline_tag": entry.get("pipeline_tag") or next(iter(_card_strings(card, "pipeline_tag")), None),
        "library": entry.get("library_name") or next(iter(_card_strings(card, "library_name")), None),
        "languages": _entry_languages(card, tags),
        "downloads": entry.get("downloads", 0),
        "likes": entry.get("likes", 0),
        "tags": tags,
        "architectures": [architecture] if isinstance(architecture, str) and architecture else [],
        "quantizations": quantizations,
        "gguf_files": files,
        "last_modified": entry.get("lastModified"),
        "created_at": entry.get("createdAt"),
        "parameter_count": _entry_parameter_count(card, gguf),
        "context_length": _entry_context_length(card, gguf),
    }


class HuggingFaceCatalog:
    """Async client for the HuggingFace Hub model listing."""

    def __init__(
        self,
        api_url: str = HF_API_URL,
        token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the catalog client.

        Args:
            api_url: Model listing endpoint.
            token: Optional HuggingFace API token for higher rate limits.
            timeout: Request timeout in seconds.
        """
        self._api_url = api_url
        self._token = token
        self._timeout = timeout

    def build_params(
        self,
        query: str,
        filters: SearchFilters | None,
        offset: int,
        limit: int,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "search": query.strip(),
            "limit": min(max(1, limit), MAX_PAGE_SIZE),
            "offset": max(0, offset),
            "full": "true",
            "filter": "gguf",
        }
        if filters is not None:
            sort_field = _SORT_FIELDS.get(filters.sort_by)
            if sort_field:
                params["sort"] = sort_field
                params["direction"] = "-1" if filters.sort_order == "desc" else "1"
            if filters.pipeline_tag and filters.pipeline_tag != "any":
                params["pipeline_tag"] = filters.pipeline_tag
        return params

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Fetch one page of GGUF model repositories.

        Args:
            query: Free-text search; empty lists trending repositories.
            filters: Used for server-side sort and pipeline tag.
            offset: Page offset.
            limit: Page size.

        Returns:
            Raw model records.

        Raises:
            CatalogTimeoutError: If the Hub does not answer in time.
            CatalogResponseError: If the Hub answers with an error or bad payload.
        """
        headers: dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(
                    self._api_url,
                    params=self.build_params(query, filters, offset, limit),
                    headers=headers,
                    timeout=self._timeout,
                )
                response.raise_for_status()
                payload = response.json()
            except httpx.TimeoutException as e:
                logger.warning("HuggingFace API timeout", query=query, offset=offset)
                raise CatalogTimeoutError(f"HuggingFace API timeout: {e}") from e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning("HuggingFace API error", status_code=status, query=query)
                raise CatalogResponseError(f"HuggingFace API error: {status}", status_code=status) from e
            except httpx.HTTPError as e:
                raise CatalogResponseError(f"HuggingFace API request failed: {e}") from e
            except ValueError as e:
                raise CatalogResponseError("HuggingFace API returned invalid JSON") from e

        if not isinstance(payload, list):
            raise CatalogResponseError("HuggingFace API returned an unexpected payload")

        records = [
            record
            for record in (entry_to_raw_record(entry) for entry in payload if isinstance(entry, dict))
            if record is not None
        ]
        logger.debug(
            "HuggingFace page fetched",
            query=query,
            offset=offset,
            entries=len(payload),
            records=len(records),
        )
        return records
