"""Tests for core/config.py."""

from __future__ import annotations

from pathlib import Path

from assay.core.config import DEFAULT_CONFIG, deep_merge, get_effective_config, load_project_config


class TestDeepMerge:
    def test_simple_merge(self):
        result = deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self):
        base = {"remediation": {"due_days": 30, "priority": "high"}}
        result = deep_merge(base, {"remediation": {"due_days": 14}})
        assert result["remediation"] == {"due_days": 14, "priority": "high"}

    def test_arrays_replaced(self):
        base = {"reports": {"appendices": ["A", "B", "C"]}}
        result = deep_merge(base, {"reports": {"appendices": ["Z"]}})
        assert result["reports"]["appendices"] == ["Z"]

    def test_base_not_mutated(self):
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base["a"]["b"] == 1


class TestLoadProjectConfig:
    def test_loads_yaml(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("scoring:\n  recompute_on_resolve: true\n", encoding="utf-8")
        assert load_project_config(tmp_path) == {"scoring": {"recompute_on_resolve": True}}

    def test_missing_config_returns_empty(self, tmp_path: Path):
        assert load_project_config(tmp_path) == {}

    def test_empty_config_returns_empty(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("", encoding="utf-8")
        assert load_project_config(tmp_path) == {}

    def test_bom_tolerated(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("\ufeffnotifications:\n  reminder_days_before: 2\n", encoding="utf-8")
        assert load_project_config(tmp_path)["notifications"]["reminder_days_before"] == 2

    def test_invalid_yaml_returns_empty(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("scoring: [unclosed\n", encoding="utf-8")
        assert load_project_config(tmp_path) == {}


class TestGetEffectiveConfig:
    def test_defaults_without_data_dir(self):
        config = get_effective_config()
        assert config["remediation"]["due_days"] == 30
        assert config["scoring"]["recompute_on_resolve"] is False
        assert "_data_dir" not in config

    def test_defaults_not_shared(self):
        config = get_effective_config()
        config["remediation"]["due_days"] = 1
        assert DEFAULT_CONFIG["remediation"]["due_days"] == 30

    def test_project_overrides_defaults(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("remediation:\n  due_days: 10\n", encoding="utf-8")
        config = get_effective_config(tmp_path)
        assert config["remediation"]["due_days"] == 10
        assert config["remediation"]["priority"] == "high"
        assert config["_data_dir"] == str(tmp_path)

    def test_cli_overrides_project(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("remediation:\n  due_days: 10\n", encoding="utf-8")
        config = get_effective_config(tmp_path, cli_overrides={"remediation": {"due_days": 5}})
        assert config["remediation"]["due_days"] == 5
