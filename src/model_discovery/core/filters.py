"""Predicate and sort pipeline over model records.

Every filter has a wildcard value ("any", empty string, empty list, 0 or
None) that disables it. :func:`apply_filters` keeps a record only if every
active predicate passes, then orders the survivors by the chosen metric.

Also hosts the small display helpers used by the API and CLI: primary file
selection, VRAM estimation, byte formatting, relative time labels and
HuggingFace URL parsing.
"""

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, Field

from model_discovery.core.records import FileDescriptor, ModelRecord

FileFormat = Literal["any", "gguf", "safetensors", "gptq", "awq"]
SizeBucket = Literal["any", "lt4gb", "4to8gb", "gt8gb"]
SortBy = Literal["downloads", "likes", "updated", "file_size"]
SortOrder = Literal["asc", "desc"]

ANY = "any"
SUPPORTED_FORMAT = "gguf"

KB = 1024
MB = 1024 * KB
GB = 1024 * MB

# Needle found in repo id / name / tags -> architecture
ARCH_ALIASES: dict[str, str] = {
    "llama": "llama",
    "mistral": "mistral",
    "mixtral": "mixtral",
    "phi": "phi",
    "qwen": "qwen",
    "gemma": "gemma",
    "deepseek": "deepseek",
}

_PARAMETER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*([bm])", re.IGNORECASE)
_LANGUAGE_PATTERN = re.compile(r"[a-z]{2}(?:-[a-z]{2})?")


@dataclass(frozen=True)
class ParameterBucket:
    """A named parameter-count range in billions (min inclusive, max exclusive)."""

    value: str
    label: str
    min_b: float | None = None
    max_b: float | None = None


PARAMETER_BUCKETS: tuple[ParameterBucket, ...] = (
    ParameterBucket("lt1b", "<1B", max_b=1),
    ParameterBucket("1to3b", "1B-3B", min_b=1, max_b=3),
    ParameterBucket("3to9b", "3B-9B", min_b=3, max_b=9),
    ParameterBucket("9to12b", "9B-12B", min_b=9, max_b=12),
    ParameterBucket("12to27b", "12B-27B", min_b=12, max_b=27),
    ParameterBucket("27to81b", "27B-81B", min_b=27, max_b=81),
    ParameterBucket("81to243b", "81B-243B", min_b=81, max_b=243),
    ParameterBucket("243to500b", "243B-500B", min_b=243, max_b=500),
    ParameterBucket("gt500b", ">500B", min_b=500),
)


class SearchFilters(BaseModel):
    """Filter and sort options for a result set."""

    architectures: list[str] = Field(default_factory=list, description="Any of these architectures")
    format: FileFormat = Field(default=ANY, description="Required file format")
    quantization: str = Field(default=ANY, description="Required file quantization (e.g. Q4_K_M)")
    tags: list[str] = Field(default_factory=list, description="All of these tags")
    license: str = Field(default=ANY, description="License id or fragment")
    pipeline_tag: str = Field(default=ANY, description="Exact pipeline tag")
    library: str = Field(default=ANY, description="Exact library name")
    language: str = Field(default=ANY, description="Language code (en, pt-br)")
    parameter: str = Field(default=ANY, description="Parameter bucket id (see PARAMETER_BUCKETS)")
    parameter_min_b: float | None = Field(default=None, ge=0, description="Min parameters (billions)")
    parameter_max_b: float | None = Field(default=None, ge=0, description="Max parameters (billions)")
    size_bucket: SizeBucket = Field(default=ANY, description="Primary file size bucket")
    min_downloads: int = Field(default=0, ge=0, description="Minimum download count")
    sort_by: SortBy = Field(default="downloads", description="Sort metric")
    sort_order: SortOrder = Field(default="desc", description="Sort direction")

    def parameter_range(self) -> tuple[float | None, float | None]:
        """Explicit bounds win; otherwise the named bucket supplies them."""
        if self.parameter_min_b is not None or self.parameter_max_b is not None:
            return self.parameter_min_b, self.parameter_max_b
        bucket = find_parameter_bucket(self.parameter)
        if bucket is None:
            return None, None
        return bucket.min_b, bucket.max_b


def find_parameter_bucket(value: str) -> ParameterBucket | None:
    key = _normalize(value)
    for bucket in PARAMETER_BUCKETS:
        if bucket.value == key:
            return bucket
    return None


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def _normalize_tag(value: str) -> str:
    return value.replace("_", "-").strip().lower()


def _is_active(value: str) -> bool:
    normalized = _normalize(value)
    return bool(normalized) and normalized != ANY


def primary_file(record: ModelRecord) -> FileDescriptor | None:
    """Smallest file with a known size, else the first file, else None."""
    sized = [file for file in record.files if file.size is not None and file.size > 0]
    if sized:
        return min(sized, key=lambda file: file.size or 0)
    return record.files[0] if record.files else None


def primary_size_bytes(record: ModelRecord) -> int:
    file = primary_file(record)
    return file.size if file is not None and file.size else 0


def record_architectures(record: ModelRecord) -> set[str]:
    """Declared architectures plus aliases found in the repo id, name and tags."""
    found = {_normalize(arch) for arch in record.architectures if _normalize(arch)}
    haystack = " ".join([record.repo_id, record.name, *record.tags]).lower()
    for needle, architecture in ARCH_ALIASES.items():
        if needle in haystack:
            found.add(architecture)
    return found


def record_licenses(record: ModelRecord) -> set[str]:
    found: set[str] = set()
    own = _normalize(record.license)
    if own:
        found.add(own)
    for tag in record.tags:
        normalized = _normalize(tag)
        if normalized.startswith("license:"):
            value = normalized[len("license:"):].strip()
            if value:
                found.add(value)
    return found


def parse_language(raw: str) -> str | None:
    """Accept ``xx`` or ``xx-yy`` codes, optionally prefixed with ``language:``."""
    value = _normalize(raw)
    if value.startswith("language:"):
        value = value[len("language:"):].strip()
    return value if _LANGUAGE_PATTERN.fullmatch(value) else None


def record_languages(record: ModelRecord) -> set[str]:
    parsed = (parse_language(item) for item in (*record.languages, *record.tags))
    return {language for language in parsed if language}


def parse_parameter_billions(label: str | None) -> float | None:
    """Parse ``7B`` / ``1.5b`` / ``350M`` style labels into billions."""
    match = _PARAMETER_PATTERN.search(_normalize(label))
    if match is None:
        return None
    value = float(match.group(1))
    return value / 1000 if match.group(2).lower() == "m" else value


def passes_size_bucket(record: ModelRecord, bucket: SizeBucket) -> bool:
    if bucket == ANY:
        return True
    size = primary_size_bytes(record)
    if size <= 0:
        return False
    if bucket == "lt4gb":
        return size <= 4 * GB
    if bucket == "4to8gb":
        return 4 * GB < size <= 8 * GB
    return size > 8 * GB


def _timestamp(iso: str | None) -> float:
    if not iso:
        return 0.0
    try:
        parsed = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _matches(record: ModelRecord, filters: SearchFilters) -> bool:
    placeholder = record.is_placeholder

    if filters.format not in (ANY, SUPPORTED_FORMAT):
        return False

    if filters.size_bucket != ANY:
        if placeholder or not passes_size_bucket(record, filters.size_bucket):
            return False

    if record.downloads < filters.min_downloads:
        return False

    wanted_architectures = {_normalize(a) for a in filters.architectures if _normalize(a)}
    if wanted_architectures and not wanted_architectures & record_architectures(record):
        return False

    if _is_active(filters.quantization):
        if placeholder:
            return False
        wanted = _normalize(filters.quantization)
        quantizations = {_normalize(file.quantization) for file in record.files}
        if wanted not in quantizations:
            return False

    if _is_active(filters.license):
        wanted = _normalize(filters.license)
        if not any(wanted == license or wanted in license for license in record_licenses(record)):
            return False

    if _is_active(filters.pipeline_tag):
        if _normalize(record.pipeline_tag) != _normalize(filters.pipeline_tag):
            return False

    if _is_active(filters.library):
        if _normalize(record.library) != _normalize(filters.library):
            return False

    if _is_active(filters.language):
        if _normalize(filters.language) not in record_languages(record):
            return False

    min_b, max_b = filters.parameter_range()
    if min_b is not None or max_b is not None:
        billions = parse_parameter_billions(record.parameter_count)
        if billions is None:
            return False
        if min_b is not None and billions < min_b:
            return False
        if max_b is not None and billions >= max_b:
            return False

    wanted_tags = {_normalize_tag(tag) for tag in filters.tags if _normalize_tag(tag)}
    if wanted_tags and not wanted_tags <= {_normalize_tag(tag) for tag in record.tags}:
        return False

    return True


def sort_records(
    records: Iterable[ModelRecord],
    sort_by: SortBy = "downloads",
    sort_order: SortOrder = "desc",
) -> list[ModelRecord]:
    """Order records ascending by the metric, reversed for descending order."""
    if sort_by == "downloads":
        ordered = sorted(records, key=lambda r: r.downloads)
    elif sort_by == "likes":
        ordered = sorted(records, key=lambda r: r.likes)
    elif sort_by == "updated":
        ordered = sorted(records, key=lambda r: _timestamp(r.last_modified))
    else:
        ordered = sorted(records, key=primary_size_bytes)
    if sort_order == "desc":
        ordered.reverse()
    return ordered


def apply_filters(
    records: Iterable[ModelRecord],
    filters: SearchFilters | None = None,
) -> list[ModelRecord]:
    """Filter and sort a record set.

    Args:
        records: Sanitized records.
        filters: Filter options; None applies only the default sort.

    Returns:
        A new list of matching records in the requested order.
    """
    filters = filters or SearchFilters()
    survivors = [record for record in records if _matches(record, filters)]
    return sort_records(survivors, filters.sort_by, filters.sort_order)


def estimate_vram_gb(file_size_bytes: float, quantization: str | None = None) -> float:
    """Rough VRAM needed to load a model file, in GB rounded to one decimal."""
    if file_size_bytes <= 0:
        return 0.0
    size_gb = file_size_bytes / GB

    quant = _normalize(quantization)
    multiplier = 1.2
    for prefix, value in (("q2", 0.55), ("q3", 0.7), ("q4", 0.85), ("q5", 1.0), ("q6", 1.15), ("q8", 1.45)):
        if quant.startswith(prefix):
            multiplier = value
            break
    else:
        if "f16" in quant:
            multiplier = 1.65

    return round(max(0.5, size_gb * multiplier), 1)


def format_bytes(size: float) -> str:
    """Human readable binary size ("4.0 GB"); unknown sizes render as "-"."""
    if not math.isfinite(size) or size <= 0:
        return "-"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{round(value)} {units[unit]}"
    return f"{value:.1f} {units[unit]}"


def relative_time_label(iso: str | None, now: datetime | None = None) -> str:
    """Label such as "3 days ago" for an ISO timestamp; "Unknown" if unparsable."""
    timestamp = _timestamp(iso)
    if not timestamp:
        return "Unknown"
    current = (now or datetime.now(timezone.utc)).timestamp()
    diff = max(0.0, current - timestamp)

    minute = 60
    hour = 60 * minute
    day = 24 * hour
    week = 7 * day
    if diff < minute:
        return "just now"
    if diff < hour:
        return f"{int(diff // minute)} min ago"
    if diff < day:
        return f"{int(diff // hour)} hours ago"
    if diff < week:
        return f"{int(diff // day)} days ago"
    return f"{int(diff // week)} weeks ago"


def extract_repo_from_hf_url(url: str) -> tuple[str, str | None] | None:
    """Extract ``(repo_id, filename)`` from a huggingface.co model URL.

    ``filename`` is set for ``/resolve/<rev>/<path>`` and ``/blob/<rev>/<path>``
    links. Returns None for anything that is not a HuggingFace repo URL.
    """
    value = url.strip()
    if not value:
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or parsed.hostname != "huggingface.co":
        return None

    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) < 2:
        return None
    repo_id = f"{parts[0]}/{parts[1]}"

    for index, part in enumerate(parts[2:], start=2):
        if part in ("resolve", "blob") and len(parts) > index + 2:
            return repo_id, unquote("/".join(parts[index + 2:]))
    return repo_id, None
