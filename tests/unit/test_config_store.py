"""Tests for the hierarchical configuration store."""

import json

import pytest

from chsources.lib.config_store import ConfigStore
from chsources.lib.errors import ConfigurationError


class TestConfigStore:
    def test_nested_mapping_is_flattened(self):
        store = ConfigStore({"ExternalConnections": {"analytics": {"HostPort": "pg:5432"}}})
        assert store.get("ExternalConnections:analytics:HostPort") == "pg:5432"

    def test_lookup_is_case_insensitive(self):
        store = ConfigStore({"ExternalConnections": {"Analytics": {"HostPort": "pg:5432"}}})
        assert store["externalconnections:ANALYTICS:hostport"] == "pg:5432"
        assert "EXTERNALCONNECTIONS:analytics:HOSTPORT" in store

    def test_scalars_become_strings(self):
        store = ConfigStore({"port": 5432, "enabled": True, "off": False, "missing": None})
        assert store.get("port") == "5432"
        assert store.get("enabled") == "true"
        assert store.get("off") == "false"
        assert "missing" not in store

    def test_lists_use_index_keys(self):
        store = ConfigStore({"hosts": ["a", "b"]})
        assert store.get("hosts:0") == "a"
        assert store.get("hosts:1") == "b"

    def test_flat_keys_accepted(self):
        store = ConfigStore({"ExternalConnections:x:Database": "db"})
        assert store.section("ExternalConnections:x").get("Database") == "db"

    def test_get_default(self):
        assert ConfigStore().get("nope", "fallback") == "fallback"
        assert ConfigStore().get("nope") is None

    def test_iter_returns_original_keys(self):
        store = ConfigStore({"A": {"Bc": "1"}})
        assert list(store) == ["A:Bc"]
        assert len(store) == 1

    def test_exists_for_sections(self):
        store = ConfigStore({"ExternalConnections": {"analytics": {"HostPort": "pg:5432"}}})
        assert store.exists("ExternalConnections")
        assert store.exists("ExternalConnections:analytics")
        assert not store.exists("ExternalConnections:other")
        # Prefix of a key name is not a section
        assert not store.exists("ExternalConnections:analy")

    def test_section_keys(self):
        store = ConfigStore({"P": {"HostPort": "h:1", "UserEnv": "U", "Nested": {"X": "1"}}})
        assert store.section("P").keys() == ["HostPort", "UserEnv", "Nested"]


class TestMerged:
    def test_later_store_wins(self):
        base = ConfigStore({"a": "1", "b": "2"})
        override = ConfigStore({"B": "3"})
        merged = ConfigStore.merged(base, override)
        assert merged.get("a") == "1"
        assert merged.get("b") == "3"

    def test_inputs_unchanged(self):
        base = ConfigStore({"a": "1"})
        ConfigStore.merged(base, ConfigStore({"a": "2"}))
        assert base.get("a") == "1"


class TestFromEnviron:
    def test_double_underscore_maps_to_separator(self):
        store = ConfigStore.from_environ({"ExternalConnections__pg__HostPort": "pg:5432"})
        assert store.get("ExternalConnections:pg:HostPort") == "pg:5432"

    def test_prefix_filters_and_strips(self):
        store = ConfigStore.from_environ(
            {"APP_ExternalConnections__pg__Database": "db", "OTHER": "x"},
            prefix="APP_",
        )
        assert store.get("ExternalConnections:pg:Database") == "db"
        assert "OTHER" not in store

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("CHS_TEST__Key", "value")
        store = ConfigStore.from_environ(prefix="CHS_TEST__")
        assert store.get("Key") == "value"


class TestFromFile:
    def test_yaml(self, tmp_path):
        path = tmp_path / "appsettings.yaml"
        path.write_text(
            "ExternalConnections:\n  analytics:\n    HostPort: pg:5432\n    Schema: sales\n",
            encoding="utf-8",
        )
        store = ConfigStore.from_file(path)
        assert store.get("ExternalConnections:analytics:Schema") == "sales"

    def test_json(self, tmp_path):
        path = tmp_path / "appsettings.json"
        path.write_text(json.dumps({"ExternalConnections": {"a": {"Database": "db"}}}), encoding="utf-8")
        assert ConfigStore.from_file(path).get("ExternalConnections:a:Database") == "db"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert len(ConfigStore.from_file(path)) == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigStore.from_file(tmp_path / "nope.yaml")

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigStore.from_file(path)

    def test_invalid_yaml_syntax(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("ExternalConnections: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigStore.from_file(path)
        assert exc_info.value.field == "root"
        assert "broken.yaml" in str(exc_info.value)
