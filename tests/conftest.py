"""Pytest fixtures for model discovery tests."""

import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from model_discovery.config import Settings
from model_discovery.core.discovery import CacheLimits, ModelDiscoveryService
from model_discovery.core.records import ModelRecord, sanitize_record
from model_discovery.infrastructure.storage import InMemoryStore

GB = 1024**3


def make_raw_record(
    repo_id: str,
    downloads: int = 0,
    likes: int = 0,
    quantization: str | None = "Q4_K_M",
    size: int | None = 2 * GB,
    **extra: Any,
) -> dict[str, Any]:
    """Build a catalog-shaped raw record with a single GGUF file."""
    files = []
    if quantization is not None or size is not None:
        filename = f"{repo_id.split('/')[-1]}.{quantization or 'model'}.gguf"
        files.append(
            {
                "filename": filename,
                "size": size,
                "quantization": quantization,
                "download_url": f"https://huggingface.co/{repo_id}/resolve/main/{filename}",
            }
        )
    return {
        "repo_id": repo_id,
        "downloads": downloads,
        "likes": likes,
        "gguf_files": files,
        **extra,
    }


def make_record(repo_id: str, **kwargs: Any) -> ModelRecord:
    record = sanitize_record(make_raw_record(repo_id, **kwargs))
    assert record is not None
    return record


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_records() -> list[ModelRecord]:
    """A small mixed set of records."""
    return [
        make_record(
            "TheBloke/Llama-2-7B-GGUF",
            downloads=5000,
            likes=40,
            quantization="Q4_K_M",
            size=3 * GB,
            parameter_count="7B",
            license="llama2",
            last_modified="2024-01-10T00:00:00Z",
        ),
        make_record(
            "TheBloke/Mistral-7B-Instruct-GGUF",
            downloads=9000,
            likes=90,
            quantization="Q5_K_M",
            size=5 * GB,
            parameter_count="7B",
            tags=["license:apache-2.0", "en"],
            last_modified="2024-03-01T00:00:00Z",
        ),
        make_record(
            "microsoft/phi-2-gguf",
            downloads=1200,
            likes=10,
            quantization="Q8_0",
            size=int(2.9 * GB),
            parameter_count="2.7B",
            license="mit",
            languages=["en"],
            last_modified="2023-12-20T00:00:00Z",
        ),
    ]


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def small_limits() -> CacheLimits:
    return CacheLimits(
        max_entries=3,
        max_pages_per_query=2,
        max_items_per_page=5,
        max_query_results=20,
        fuzzy_limit=10,
        history_size=3,
    )


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with a temporary store file."""
    return Settings(
        store_path=temp_dir / "store.json",
        hf_token=None,
        log_level="DEBUG",
    )


@pytest.fixture
def discovery_service(memory_store: InMemoryStore) -> ModelDiscoveryService:
    """Service over an in-memory store whose catalog must not be called."""

    async def no_catalog(*args: Any, **kwargs: Any) -> list[dict[str, Any]]:
        raise AssertionError("catalog should not be called")

    return ModelDiscoveryService(no_catalog, store=memory_store)


@pytest.fixture
def raw_record_factory() -> Any:
    """Factory for catalog-shaped raw records."""
    return make_raw_record


@pytest.fixture
def record_factory() -> Any:
    """Factory for sanitized records."""
    return make_record
