"""Tests for the filter and sort pipeline and display helpers."""

from datetime import datetime, timezone

import pytest

from model_discovery.core.filters import (
    GB,
    SearchFilters,
    apply_filters,
    estimate_vram_gb,
    extract_repo_from_hf_url,
    find_parameter_bucket,
    format_bytes,
    parse_language,
    parse_parameter_billions,
    primary_file,
    relative_time_label,
)
from model_discovery.core.records import sanitize_record


def ids(records):
    return [record.repo_id for record in records]


class TestApplyFilters:
    """Tests for apply_filters over the sample records."""

    def test_architecture_and_quantization(self, record_factory):
        """Only the record with both a llama architecture and a Q4_K_M file survives."""
        records = [
            record_factory("TheBloke/Llama-2-7B-GGUF", quantization="Q4_K_M"),
            record_factory("TheBloke/Llama-2-13B-GGUF", quantization="Q8_0"),
        ]
        filters = SearchFilters(architectures=["llama"], quantization="Q4_K_M")
        assert ids(apply_filters(records, filters)) == ["TheBloke/Llama-2-7B-GGUF"]

    def test_no_filters_sorts_by_downloads_desc(self, sample_records):
        assert ids(apply_filters(sample_records)) == [
            "TheBloke/Mistral-7B-Instruct-GGUF",
            "TheBloke/Llama-2-7B-GGUF",
            "microsoft/phi-2-gguf",
        ]

    def test_quantization_case_insensitive(self, sample_records):
        filters = SearchFilters(quantization="q5_k_m")
        assert ids(apply_filters(sample_records, filters)) == ["TheBloke/Mistral-7B-Instruct-GGUF"]

    def test_declared_architecture_matches(self, record_factory):
        record = record_factory("someone/custom-model", architectures=["Qwen2"])
        assert ids(apply_filters([record], SearchFilters(architectures=["qwen2"]))) == [
            "someone/custom-model"
        ]

    def test_any_of_architectures(self, sample_records):
        filters = SearchFilters(architectures=["phi", "mistral"])
        assert set(ids(apply_filters(sample_records, filters))) == {
            "TheBloke/Mistral-7B-Instruct-GGUF",
            "microsoft/phi-2-gguf",
        }

    @pytest.mark.parametrize(
        ("bucket", "expected"),
        [
            ("lt4gb", {"TheBloke/Llama-2-7B-GGUF", "microsoft/phi-2-gguf"}),
            ("4to8gb", {"TheBloke/Mistral-7B-Instruct-GGUF"}),
            ("gt8gb", set()),
        ],
    )
    def test_size_bucket(self, sample_records, bucket, expected):
        filters = SearchFilters(size_bucket=bucket)
        assert set(ids(apply_filters(sample_records, filters))) == expected

    def test_size_bucket_excludes_unknown_size(self, record_factory):
        record = record_factory("a/unsized", size=None)
        assert apply_filters([record], SearchFilters(size_bucket="lt4gb")) == []

    def test_placeholder_excluded_by_file_filters(self, raw_record_factory):
        placeholder = sanitize_record(raw_record_factory("a/b", kind="placeholder"))
        assert placeholder is not None
        assert apply_filters([placeholder], SearchFilters(quantization="Q4_K_M")) == []
        assert apply_filters([placeholder], SearchFilters(size_bucket="lt4gb")) == []
        assert apply_filters([placeholder]) == [placeholder]

    def test_min_downloads(self, sample_records):
        filters = SearchFilters(min_downloads=2000)
        assert ids(apply_filters(sample_records, filters)) == [
            "TheBloke/Mistral-7B-Instruct-GGUF",
            "TheBloke/Llama-2-7B-GGUF",
        ]

    def test_license_from_field_or_tag(self, sample_records):
        assert ids(apply_filters(sample_records, SearchFilters(license="apache"))) == [
            "TheBloke/Mistral-7B-Instruct-GGUF"
        ]
        assert ids(apply_filters(sample_records, SearchFilters(license="MIT"))) == [
            "microsoft/phi-2-gguf"
        ]

    def test_language(self, sample_records):
        filters = SearchFilters(language="en")
        assert set(ids(apply_filters(sample_records, filters))) == {
            "TheBloke/Mistral-7B-Instruct-GGUF",
            "microsoft/phi-2-gguf",
        }

    def test_parameter_bucket(self, sample_records):
        assert ids(apply_filters(sample_records, SearchFilters(parameter="1to3b"))) == [
            "microsoft/phi-2-gguf"
        ]
        assert set(ids(apply_filters(sample_records, SearchFilters(parameter="3to9b")))) == {
            "TheBloke/Llama-2-7B-GGUF",
            "TheBloke/Mistral-7B-Instruct-GGUF",
        }

    def test_explicit_parameter_range_wins(self, sample_records):
        filters = SearchFilters(parameter="3to9b", parameter_max_b=3)
        assert ids(apply_filters(sample_records, filters)) == ["microsoft/phi-2-gguf"]

    def test_parameter_filter_excludes_unknown_count(self, record_factory):
        record = record_factory("a/b")
        assert apply_filters([record], SearchFilters(parameter_min_b=1)) == []

    def test_format(self, sample_records):
        assert apply_filters(sample_records, SearchFilters(format="safetensors")) == []
        assert len(apply_filters(sample_records, SearchFilters(format="gguf"))) == 3

    def test_tags_all_required(self, sample_records):
        assert ids(apply_filters(sample_records, SearchFilters(tags=["EN"]))) == [
            "TheBloke/Mistral-7B-Instruct-GGUF"
        ]
        assert apply_filters(sample_records, SearchFilters(tags=["en", "missing"])) == []

    def test_pipeline_tag_and_library_exact(self, record_factory):
        records = [
            record_factory("a/text", pipeline_tag="text-generation", library="llama.cpp"),
            record_factory("a/other", pipeline_tag="text-generation-extra"),
        ]
        assert ids(apply_filters(records, SearchFilters(pipeline_tag="Text-Generation"))) == ["a/text"]
        assert ids(apply_filters(records, SearchFilters(library="LLAMA.CPP"))) == ["a/text"]

    @pytest.mark.parametrize(
        ("sort_by", "sort_order", "expected"),
        [
            ("likes", "asc", ["phi", "Llama", "Mistral"]),
            ("updated", "desc", ["Mistral", "Llama", "phi"]),
            ("file_size", "asc", ["phi", "Llama", "Mistral"]),
            ("downloads", "asc", ["phi", "Llama", "Mistral"]),
        ],
    )
    def test_sorting(self, sample_records, sort_by, sort_order, expected):
        filters = SearchFilters(sort_by=sort_by, sort_order=sort_order)
        ordered = apply_filters(sample_records, filters)
        assert [next(word for word in expected if word in r.repo_id) for r in ordered] == expected

    def test_input_not_modified(self, sample_records):
        before = list(sample_records)
        apply_filters(sample_records, SearchFilters(sort_order="asc"))
        assert sample_records == before

    def test_invalid_sort_rejected(self):
        with pytest.raises(ValueError):
            SearchFilters(sort_by="stars")  # type: ignore[arg-type]


class TestRecordHelpers:
    def test_primary_file_is_smallest_sized(self):
        record = sanitize_record(
            {
                "repo_id": "a/b",
                "gguf_files": [
                    {"filename": "big.gguf", "download_url": "u1", "size": 8 * GB},
                    {"filename": "unknown.gguf", "download_url": "u2"},
                    {"filename": "small.gguf", "download_url": "u3", "size": 2 * GB},
                ],
            }
        )
        assert record is not None
        file = primary_file(record)
        assert file is not None
        assert file.filename == "small.gguf"

    def test_primary_file_without_files(self, record_factory):
        record = record_factory("a/b", quantization=None, size=None)
        assert primary_file(record) is None

    @pytest.mark.parametrize(
        ("label", "expected"),
        [("7B", 7.0), ("1.5b", 1.5), ("350M", 0.35), ("", None), (None, None)],
    )
    def test_parse_parameter_billions(self, label, expected):
        assert parse_parameter_billions(label) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("en", "en"), ("language:pt-BR", "pt-br"), ("gguf", None), ("e", None)],
    )
    def test_parse_language(self, raw, expected):
        assert parse_language(raw) == expected

    def test_find_parameter_bucket(self):
        bucket = find_parameter_bucket("3TO9B")
        assert bucket is not None
        assert (bucket.min_b, bucket.max_b) == (3, 9)
        assert find_parameter_bucket("any") is None


class TestDisplayHelpers:
    def test_format_bytes(self):
        assert format_bytes(0) == "-"
        assert format_bytes(float("nan")) == "-"
        assert format_bytes(float("inf")) == "-"
        assert format_bytes(512) == "512 B"
        assert format_bytes(4 * GB) == "4.0 GB"
        assert format_bytes(1536) == "1.5 KB"

    def test_estimate_vram(self):
        assert estimate_vram_gb(0) == 0.0
        assert estimate_vram_gb(4 * GB, "Q4_K_M") == 3.4
        assert estimate_vram_gb(GB // 10, "Q4_0") == 0.5

    def test_relative_time_label(self):
        now = datetime(2024, 3, 10, tzinfo=timezone.utc)
        assert relative_time_label("2024-03-07T00:00:00Z", now) == "3 days ago"
        assert relative_time_label("2024-03-09T22:00:00Z", now) == "2 hours ago"
        assert relative_time_label("2024-02-04T00:00:00Z", now) == "5 weeks ago"
        assert relative_time_label(None, now) == "Unknown"
        assert relative_time_label("yesterday", now) == "Unknown"

    def test_extract_repo_from_resolve_url(self):
        url = "https://huggingface.co/TheBloke/Llama-2-7B-GGUF/resolve/main/llama-2-7b.Q4_K_M.gguf"
        assert extract_repo_from_hf_url(url) == (
            "TheBloke/Llama-2-7B-GGUF",
            "llama-2-7b.Q4_K_M.gguf",
        )

    def test_extract_repo_from_repo_url(self):
        assert extract_repo_from_hf_url("https://huggingface.co/org/repo") == ("org/repo", None)

    @pytest.mark.parametrize(
        "url",
        ["", "https://example.com/org/repo", "https://huggingface.co/org", "ftp://huggingface.co/a/b"],
    )
    def test_extract_repo_rejects(self, url):
        assert extract_repo_from_hf_url(url) is None
