import os
from pathlib import Path

from nowbench.config.loader import (
    load_runtime_defaults,
    load_runtime_defaults_detailed,
    load_scenario_library_detailed,
    load_toml,
    load_toml_detailed,
    resolve_runtime_defaults_path,
    resolve_scenario_library_path,
)


def test_load_runtime_defaults_from_packaged_resources(monkeypatch):
    monkeypatch.delenv("NOWBENCH_RUNTIME_DEFAULTS_PATH", raising=False)

    loaded = load_runtime_defaults()

    assert isinstance(loaded, dict)
    assert loaded["meta"]["schema_version"] == 1
    assert loaded["trial_defaults"]["single_resource_iterations"] == 3
    assert loaded["auth_defaults"]["max_auth_retries"] == 2


def test_load_scenario_library_from_packaged_resources(monkeypatch):
    monkeypatch.delenv("NOWBENCH_SCENARIOS_PATH", raising=False)

    result = load_scenario_library_detailed()

    assert result["ok"] is True
    assert result["source"] == "packaged_toml"
    assert "multiTableTests" in result["payload"]["categories"]


def test_load_runtime_defaults_honors_override_path(tmp_path, monkeypatch):
    override = tmp_path / "runtime-defaults.toml"
    override.write_text(
        "[trial_defaults]\nsingle_resource_iterations = 5\nsettle_delay_ms = 0\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("NOWBENCH_RUNTIME_DEFAULTS_PATH", str(override))

    result = load_runtime_defaults_detailed()

    assert result["source"] == "override_toml"
    assert result["payload"]["trial_defaults"]["single_resource_iterations"] == 5
    assert result["payload"]["trial_defaults"]["settle_delay_ms"] == 0


def test_load_runtime_defaults_rejects_oversized_override_path(tmp_path, monkeypatch):
    override = tmp_path / "runtime-defaults-large.toml"
    payload = (
        "[trial_defaults]\n"
        "single_resource_iterations = 5\n"
        "comment = \""
        + ("x" * 1_100_000)
        + "\"\n"
    )
    override.write_text(payload, encoding="utf-8")
    monkeypatch.setenv("NOWBENCH_RUNTIME_DEFAULTS_PATH", str(override))

    loaded = load_runtime_defaults()

    assert loaded == {}
    assert load_runtime_defaults_detailed()["error_kind"] == "oversized"


def test_load_toml_detailed_reports_missing_and_invalid_files(tmp_path):
    missing = load_toml_detailed(tmp_path / "absent.toml")
    broken_path = tmp_path / "broken.toml"
    broken_path.write_text("[trial_defaults\n", encoding="utf-8")
    broken = load_toml_detailed(broken_path)

    assert (missing["ok"], missing["error_kind"]) == (False, "missing")
    assert (broken["ok"], broken["error_kind"]) == (False, "invalid_toml")


def test_scenario_library_env_override_and_explicit_path(tmp_path, monkeypatch):
    library = tmp_path / "scenarios.toml"
    library.write_text("[meta]\nschema_version = 1\n", encoding="utf-8")
    monkeypatch.setenv("NOWBENCH_SCENARIOS_PATH", str(library))

    from_env = load_scenario_library_detailed()
    explicit = load_scenario_library_detailed(library)

    assert from_env["source"] == "override_toml"
    assert explicit["source"] == "explicit_path"
    assert resolve_scenario_library_path() == library


def test_resolve_runtime_defaults_path_returns_existing_packaged_path(monkeypatch):
    monkeypatch.delenv("NOWBENCH_RUNTIME_DEFAULTS_PATH", raising=False)

    path = resolve_runtime_defaults_path()

    assert isinstance(path, Path)
    assert path.name == "defaults.toml"
    assert path.exists()


def test_load_toml_cache_invalidates_when_file_changes(tmp_path):
    import nowbench.config.loader as loader_mod

    config_path = tmp_path / "runtime-defaults.toml"
    config_path.write_text("[trial_defaults]\nsingle_resource_iterations = 3\n", encoding="utf-8")

    loader_mod._parse_toml_file.cache_clear()
    first = load_toml(config_path)
    second = load_toml(config_path)
    assert first["trial_defaults"]["single_resource_iterations"] == 3
    assert second["trial_defaults"]["single_resource_iterations"] == 3
    assert loader_mod._parse_toml_file.cache_info().hits >= 1

    stat_before = config_path.stat()
    config_path.write_text("[trial_defaults]\nsingle_resource_iterations = 9\n", encoding="utf-8")
    bumped_seconds = max(stat_before.st_mtime + 5.0, config_path.stat().st_mtime + 5.0)
    os.utime(config_path, (bumped_seconds, bumped_seconds))

    third = load_toml(config_path)
    assert third["trial_defaults"]["single_resource_iterations"] == 9
