"""Tests for settings loading."""

from pathlib import Path

import pytest

from model_discovery.config import Settings, load_yaml_config, reload_settings


class TestLoadYamlConfig:
    def test_missing_file(self, temp_dir: Path):
        assert load_yaml_config(temp_dir / "missing.yaml") == {}

    def test_reads_mapping(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text("cache_max_entries: 5\nhf_timeout: 3.5\n", encoding="utf-8")
        assert load_yaml_config(path) == {"cache_max_entries": 5, "hf_timeout": 3.5}

    def test_non_mapping_ignored(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml_config(path) == {}

    def test_invalid_yaml_ignored(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text("key: [unclosed\n", encoding="utf-8")
        assert load_yaml_config(path) == {}


class TestSettings:
    def test_cache_limits(self):
        settings = Settings(cache_max_entries=7, fallback_fuzzy_limit=4, history_max_items=2)
        limits = settings.cache_limits()
        assert limits.max_entries == 7
        assert limits.fuzzy_limit == 4
        assert limits.history_size == 2

    def test_cors_origins_from_string(self):
        settings = Settings(cors_origins="http://a, http://b")
        assert settings.cors_origins == ["http://a", "http://b"]

    def test_store_path_from_string(self):
        assert Settings(store_path="data/x.json").store_path == Path("data/x.json")

    def test_invalid_limit_rejected(self):
        with pytest.raises(ValueError):
            Settings(cache_max_entries=0)

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CACHE_MAX_PAGES_PER_QUERY", "3")
        try:
            assert reload_settings().cache_max_pages_per_query == 3
        finally:
            monkeypatch.delenv("CACHE_MAX_PAGES_PER_QUERY")
            reload_settings()
