"""Tests for the discovery service orchestration."""

from typing import Any

import pytest

from model_discovery.core.discovery import CacheLimits, ModelDiscoveryService
from model_discovery.core.exceptions import CatalogResponseError, CatalogTimeoutError
from model_discovery.core.filters import SearchFilters
from model_discovery.infrastructure.storage import InMemoryStore


def ids(records):
    return [record.repo_id for record in records]


class FakeCatalog:
    """Catalog returning canned pages keyed by (query, offset)."""

    def __init__(self, pages: dict[tuple[str, int], list[dict[str, Any]]] | None = None) -> None:
        self.pages = pages or {}
        self.calls: list[tuple[str, int, int]] = []
        self.error: Exception | None = None

    async def __call__(
        self,
        query: str,
        filters: SearchFilters | None,
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        self.calls.append((query, offset, limit))
        if self.error is not None:
            raise self.error
        return self.pages.get((query.strip().lower(), offset), [])


@pytest.fixture
def catalog(raw_record_factory) -> FakeCatalog:
    return FakeCatalog(
        {
            ("llama", 0): [
                raw_record_factory("TheBloke/Llama-2-7B-GGUF", downloads=10, quantization="Q4_K_M"),
                raw_record_factory("TheBloke/Llama-2-13B-GGUF", downloads=20, quantization="Q8_0"),
            ],
            ("llama", 2): [raw_record_factory("TheBloke/CodeLlama-7B-GGUF", downloads=5)],
            ("", 0): [raw_record_factory("trending/hot-model", downloads=1)],
        }
    )


@pytest.fixture
def service(catalog: FakeCatalog, memory_store: InMemoryStore) -> ModelDiscoveryService:
    return ModelDiscoveryService(catalog, store=memory_store)


class TestSearch:
    """Tests for ModelDiscoveryService.search."""

    @pytest.mark.asyncio
    async def test_miss_queries_catalog_then_hits_cache(self, service, catalog):
        first = await service.search("Llama", offset=0, limit=2)
        second = await service.search("llama", offset=0, limit=2)

        assert first.source == "catalog"
        assert not first.cached
        assert first.fetched == 2
        assert ids(first.records) == ["TheBloke/Llama-2-13B-GGUF", "TheBloke/Llama-2-7B-GGUF"]
        assert second.source == "cache"
        assert second.cached
        assert ids(second.records) == ids(first.records)
        assert catalog.calls == [("Llama", 0, 2)]

    @pytest.mark.asyncio
    async def test_pages_cached_independently(self, service, catalog):
        await service.search("llama", offset=0, limit=2)
        page_two = await service.search("llama", offset=2, limit=2)

        assert page_two.source == "catalog"
        assert ids(page_two.records) == ["TheBloke/CodeLlama-7B-GGUF"]
        assert len(service.cached_results("llama")) == 3

    @pytest.mark.asyncio
    async def test_filters_applied_to_page(self, service):
        result = await service.search("llama", SearchFilters(quantization="Q4_K_M"))
        assert ids(result.records) == ["TheBloke/Llama-2-7B-GGUF"]

        cached = await service.search("llama", SearchFilters(quantization="Q8_0"))
        assert cached.source == "cache"
        assert ids(cached.records) == ["TheBloke/Llama-2-13B-GGUF"]

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self, service, catalog):
        await service.search("llama")
        result = await service.search("llama", refresh=True)
        assert result.source == "catalog"
        assert len(catalog.calls) == 2

    @pytest.mark.asyncio
    async def test_history_recorded(self, service):
        await service.search("  Llama ")
        await service.search("")
        await service.search("mistral")
        assert service.history == ["mistral", "llama"]

    @pytest.mark.asyncio
    async def test_catalog_error_serves_fallback(self, service, catalog):
        await service.search("llama")
        catalog.error = CatalogTimeoutError("timeout")

        result = await service.search("llama", offset=2)

        assert result.source == "fallback"
        assert result.cached
        assert result.error == "timeout"
        assert ids(result.records) == ["TheBloke/Llama-2-13B-GGUF", "TheBloke/Llama-2-7B-GGUF"]

    @pytest.mark.asyncio
    async def test_catalog_error_fuzzy_fallback(self, service, catalog):
        await service.search("llama")
        catalog.error = CatalogResponseError("offline")

        result = await service.search("13b")

        assert result.source == "fallback"
        assert ids(result.records) == ["TheBloke/Llama-2-13B-GGUF"]

    @pytest.mark.asyncio
    async def test_catalog_error_without_cache_raises(self, service, catalog):
        catalog.error = CatalogResponseError("offline")
        with pytest.raises(CatalogResponseError):
            await service.search("llama")

    @pytest.mark.asyncio
    async def test_catalog_error_fallback_disabled(self, service, catalog):
        await service.search("llama")
        catalog.error = CatalogTimeoutError("timeout")
        with pytest.raises(CatalogTimeoutError):
            await service.search("llama", refresh=True, use_fallback=False)

    @pytest.mark.asyncio
    async def test_empty_first_page_falls_back(self, service, catalog):
        await service.search("llama")
        catalog.pages.pop(("llama", 0))

        result = await service.search("llama", refresh=True)

        assert result.source == "fallback"
        assert result.error is None
        assert len(result.records) == 2

    @pytest.mark.asyncio
    async def test_empty_later_page_is_empty(self, service):
        await service.search("llama")
        result = await service.search("llama", offset=40)
        assert result.source == "catalog"
        assert result.records == []

    @pytest.mark.asyncio
    async def test_empty_query_lists_trending(self, service):
        result = await service.search("")
        assert ids(result.records) == ["trending/hot-model"]
        assert service.cache.find("") is not None

    @pytest.mark.asyncio
    async def test_huggingface_url_searches_repo_id(self, service, catalog):
        url = "https://huggingface.co/TheBloke/Llama-2-7B-GGUF/blob/main/llama-2-7b.Q4_K_M.gguf"
        await service.search(url)

        assert catalog.calls[0][0] == "TheBloke/Llama-2-7B-GGUF"
        assert service.history == ["thebloke/llama-2-7b-gguf"]


class TestCacheManagement:
    @pytest.mark.asyncio
    async def test_hydrate_restores_flushed_state(self, catalog, memory_store):
        first = ModelDiscoveryService(catalog, store=memory_store)
        await first.search("llama")
        first.flush()

        second = ModelDiscoveryService(catalog, store=memory_store)
        second.hydrate()

        assert second.history == ["llama"]
        assert len(second.cache) == 1
        result = await second.search("llama")
        assert result.source == "cache"
        assert len(catalog.calls) == 1

    def test_hydrate_and_flush_without_store(self, catalog):
        service = ModelDiscoveryService(catalog)
        service.hydrate()
        service.flush()
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_clear_cache(self, service):
        await service.search("llama")
        await service.search("")
        assert service.clear_cache() == 2
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_forget_query(self, service):
        await service.search("llama")
        assert service.forget_query("LLAMA") is True
        assert service.forget_query("llama") is False
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_limits_applied(self, catalog, memory_store, small_limits: CacheLimits):
        service = ModelDiscoveryService(catalog, store=memory_store, limits=small_limits)
        for query in ("a", "b", "c", "d"):
            await service.search(query)
        await service.search("llama")

        assert len(service.cache) == 1
        assert service.history == ["llama", "d", "c"]

    @pytest.mark.asyncio
    async def test_stats(self, service):
        await service.search("llama")
        stats = service.stats()
        assert stats["entries"] == 1
        assert stats["items"] == 2
        assert stats["max_entries"] == 20
        assert stats["queries"][0]["query"] == "llama"

    @pytest.mark.asyncio
    async def test_cached_results_span_pages(self, service):
        await service.search("llama", offset=0, limit=2)
        await service.search("llama", offset=2, limit=2)

        assert ids(service.cached_results("LLAMA")) == [
            "TheBloke/Llama-2-7B-GGUF",
            "TheBloke/Llama-2-13B-GGUF",
            "TheBloke/CodeLlama-7B-GGUF",
        ]
        assert service.cached_results("mistral") == []

    @pytest.mark.asyncio
    async def test_import_results_replaces_pages(self, service, catalog, raw_record_factory):
        await service.search("llama", offset=0, limit=2)
        await service.search("llama", offset=2, limit=2)

        stored = service.import_results(
            "Llama",
            [raw_record_factory("a/imported"), {"repo_id": ""}, raw_record_factory("a/imported")],
        )

        assert stored == 1
        entry = service.cache.find("llama")
        assert entry is not None
        assert [page.offset for page in entry.pages] == [0]
        assert ids(service.cached_results("llama")) == ["a/imported"]

        result = await service.search("llama")
        assert result.source == "cache"
        assert len(catalog.calls) == 2

    def test_import_results_without_valid_records(self, service):
        assert service.import_results("llama", [None, {"repo_id": 3}]) == 0
        assert len(service.cache) == 0

    def test_import_results_from_url(self, service, raw_record_factory):
        service.import_results("https://huggingface.co/a/b", [raw_record_factory("a/b")])
        assert service.cache.find("a/b") is not None
