"""Tests for config.json loading and environment fallbacks."""

import json

from meshadapter.core.config import get_config_value, get_float, get_int, load_config


def test_load_config_missing_file(tmp_path):
    """A missing config file yields an empty dict."""
    assert load_config(str(tmp_path / "config.json")) == {}


def test_load_config_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert load_config(str(path)) == {}


def test_load_config_non_object(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]")
    assert load_config(str(path)) == {}


def test_load_config_from_cwd(isolated_config):
    (isolated_config / "config.json").write_text(json.dumps({"conformance": {"namespace": "smi"}}))
    assert get_config_value(["conformance", "namespace"], default="meshery") == "smi"


def test_nested_value_from_explicit_config():
    config = {"kubernetes": {"qps": 20, "burst": 40}}
    assert get_config_value(["kubernetes", "qps"], config=config) == 20
    assert get_config_value(["kubernetes", "burst"], config=config) == 40


def test_env_fallback(monkeypatch):
    """CONFORMANCE_NAMESPACE is used when conformance.namespace is absent."""
    monkeypatch.setenv("CONFORMANCE_NAMESPACE", "from-env")
    assert get_config_value(["conformance", "namespace"], default="meshery", config={}) == "from-env"


def test_config_file_wins_over_env(monkeypatch):
    monkeypatch.setenv("CONFORMANCE_NAMESPACE", "from-env")
    config = {"conformance": {"namespace": "from-file"}}
    assert get_config_value(["conformance", "namespace"], config=config) == "from-file"


def test_non_mapping_intermediate_falls_through():
    config = {"conformance": "not-a-section"}
    assert get_config_value(["conformance", "namespace"], default="meshery", config=config) == "meshery"


def test_default_when_absent():
    assert get_config_value(["adapter", "name"], default="meshadapter", config={}) == "meshadapter"


class TestNumericSettings:
    """Tests for get_float/get_int coercion."""

    def test_env_string_coerced(self, monkeypatch):
        monkeypatch.setenv("KUBERNETES_QPS", "12.5")
        monkeypatch.setenv("KUBERNETES_BURST", "30")
        assert get_float(["kubernetes", "qps"], 50.0, config={}) == 12.5
        assert get_int(["kubernetes", "burst"], 100, config={}) == 30

    def test_invalid_value_uses_default(self):
        config = {"kubernetes": {"qps": "fast", "burst": [1]}}
        assert get_float(["kubernetes", "qps"], 50.0, config=config) == 50.0
        assert get_int(["kubernetes", "burst"], 100, config=config) == 100


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "settings" / "adapter.json"
    path.parent.mkdir()
    path.write_text(json.dumps({"adapter": {"name": "istio"}}))
    monkeypatch.setenv("MESHADAPTER_CONFIG", str(path))

    assert get_config_value(["adapter", "name"]) == "istio"
