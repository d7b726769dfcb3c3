"""Model records returned by the remote catalog and their sanitizer.

Catalog results and persisted cache contents are untrusted JSON. Everything
that enters the search cache goes through :func:`sanitize_record`, which
either produces a well-formed :class:`ModelRecord` or drops the item.
"""

import math
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RecordKind = Literal["resolved", "placeholder"]

# Tag used by older catalog payloads to mark a placeholder record
PLACEHOLDER_TAG = "static:first-page"


class FileDescriptor(BaseModel):
    """A downloadable model file."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(description="File name inside the repository")
    size: int | None = Field(default=None, description="Size in bytes, None when unknown")
    sha256: str | None = Field(default=None, description="Optional checksum")
    quantization: str | None = Field(default=None, description="Quantization label (e.g. Q4_K_M)")
    download_url: str = Field(description="Direct download URL")


class ModelRecord(BaseModel):
    """A sanitized description of one discoverable model.

    ``kind`` distinguishes fully resolved records from placeholder records
    that stand in for a page whose files are not known yet.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    repo_id: str = Field(min_length=1, description="Repository id (owner/name)")
    name: str = Field(description="Display name")
    author: str | None = Field(default=None, description="Repository owner")
    description: str | None = None
    license: str | None = None
    pipeline_tag: str | None = None
    library: str | None = None
    languages: tuple[str, ...] = ()
    downloads: int = 0
    likes: int = 0
    tags: tuple[str, ...] = ()
    architectures: tuple[str, ...] = ()
    quantizations: tuple[str, ...] = ()
    files: tuple[FileDescriptor, ...] = Field(default=(), alias="gguf_files")
    last_modified: str | None = None
    created_at: str | None = None
    parameter_count: str | None = None
    context_length: int | None = None
    kind: RecordKind = "resolved"

    @property
    def is_placeholder(self) -> bool:
        return self.kind == "placeholder"

    def to_raw(self) -> dict[str, Any]:
        """Serialize to the JSON shape accepted by :func:`sanitize_record`."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, str))


def _count(value: Any) -> int:
    return int(value) if _is_number(value) else 0


def _sanitize_file(raw: Any) -> FileDescriptor | None:
    if isinstance(raw, FileDescriptor):
        return raw
    if not isinstance(raw, Mapping):
        return None
    filename = raw.get("filename")
    download_url = raw.get("download_url")
    if not isinstance(filename, str) or not isinstance(download_url, str):
        return None

    size = int(raw["size"]) if _is_number(raw.get("size")) else 0
    return FileDescriptor(
        filename=filename,
        size=size if size > 0 else None,
        sha256=_optional_str(raw.get("sha256")),
        quantization=_optional_str(raw.get("quantization")),
        download_url=download_url,
    )


def _sanitize_files(value: Any) -> tuple[FileDescriptor, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    files = (_sanitize_file(item) for item in value)
    return tuple(file for file in files if file is not None)


def _is_placeholder(raw: Mapping[str, Any], tags: tuple[str, ...]) -> bool:
    if raw.get("kind") == "placeholder":
        return True
    return any(tag.replace("_", "-").strip().lower() == PLACEHOLDER_TAG for tag in tags)


def sanitize_record(raw: Any) -> ModelRecord | None:
    """Validate and normalize an untrusted catalog item.

    Args:
        raw: A JSON-like mapping, or an already sanitized record.

    Returns:
        The sanitized record, or None when the input has no usable repo id.
    """
    if isinstance(raw, ModelRecord):
        return raw
    if not isinstance(raw, Mapping):
        return None

    repo_id = raw.get("repo_id")
    if not isinstance(repo_id, str) or not repo_id.strip():
        return None

    segments = repo_id.split("/")
    tags = _str_tuple(raw.get("tags"))
    files_raw = raw.get("gguf_files", raw.get("files"))
    context_length = raw.get("context_length")

    return ModelRecord(
        repo_id=repo_id,
        name=_optional_str(raw.get("name")) or segments[-1] or repo_id,
        author=_optional_str(raw.get("author")) or segments[0],
        description=_optional_str(raw.get("description")),
        license=_optional_str(raw.get("license")),
        pipeline_tag=_optional_str(raw.get("pipeline_tag")),
        library=_optional_str(raw.get("library")),
        languages=_str_tuple(raw.get("languages")),
        downloads=_count(raw.get("downloads")),
        likes=_count(raw.get("likes")),
        tags=tags,
        architectures=_str_tuple(raw.get("architectures")),
        quantizations=_str_tuple(raw.get("quantizations")),
        files=_sanitize_files(files_raw),
        last_modified=_optional_str(raw.get("last_modified")),
        created_at=_optional_str(raw.get("created_at")),
        parameter_count=_optional_str(raw.get("parameter_count")),
        context_length=int(context_length) if _is_number(context_length) else None,
        kind="placeholder" if _is_placeholder(raw, tags) else "resolved",
    )


def dedupe_records(items: Iterable[Any]) -> list[ModelRecord]:
    """Sanitize ``items`` and drop later duplicates of a repo id.

    First-seen order is preserved and invalid items are skipped.
    """
    seen: set[str] = set()
    result: list[ModelRecord] = []
    for raw in items:
        record = sanitize_record(raw)
        if record is None or record.repo_id in seen:
            continue
        seen.add(record.repo_id)
        result.append(record)
    return result
