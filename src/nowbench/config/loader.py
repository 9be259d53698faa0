"""
TOML configuration sources
==========================

Two packaged files ship with nowbench: ``defaults.toml`` (runtime tuning)
and ``scenarios.toml`` (the scenario library). Each can be replaced by a
file named in an environment variable. Loads never raise: they return a
result dict with ``ok``, ``payload``, ``path``, ``source`` and, on failure,
an ``error_kind`` of ``missing``, ``unreadable``, ``oversized`` or
``invalid_toml``.
"""

from __future__ import annotations

import os
import tempfile
import tomllib
from functools import lru_cache
from importlib import resources as importlib_resources
from pathlib import Path

_RESOURCE_PACKAGE = "nowbench.config"
_RUNTIME_DEFAULTS_FILE = "defaults.toml"
_SCENARIO_LIBRARY_FILE = "scenarios.toml"
RUNTIME_DEFAULTS_ENV_VAR = "NOWBENCH_RUNTIME_DEFAULTS_PATH"
SCENARIO_LIBRARY_ENV_VAR = "NOWBENCH_SCENARIOS_PATH"
_MAX_CONFIG_FILE_BYTES = 1_048_576
_MATERIALIZED: dict[str, Path] = {}
_MATERIALIZED_DIR: tempfile.TemporaryDirectory | None = None


def _materialize(filename: str, data: bytes) -> Path:
    global _MATERIALIZED_DIR
    known = _MATERIALIZED.get(filename)
    if known is not None and known.exists():
        return known
    if _MATERIALIZED_DIR is None:
        _MATERIALIZED_DIR = tempfile.TemporaryDirectory(prefix="nowbench-config-")
    target = Path(_MATERIALIZED_DIR.name) / filename
    target.write_bytes(data)
    _MATERIALIZED[filename] = target
    return target


def packaged_config_path(filename: str) -> Path:
    resource = importlib_resources.files(_RESOURCE_PACKAGE).joinpath(filename)
    try:
        return Path(resource)
    except TypeError:
        # Zip imports expose a Traversable with no filesystem path.
        return _materialize(filename, resource.read_bytes())


def env_config_path(env_var: str) -> Path | None:
    value = os.getenv(env_var, "").strip()
    return Path(value) if value else None


def resolve_runtime_defaults_path() -> Path:
    return env_config_path(RUNTIME_DEFAULTS_ENV_VAR) or packaged_config_path(_RUNTIME_DEFAULTS_FILE)


def resolve_scenario_library_path() -> Path:
    return env_config_path(SCENARIO_LIBRARY_ENV_VAR) or packaged_config_path(_SCENARIO_LIBRARY_FILE)


@lru_cache(maxsize=64)
def _parse_toml_file(path_str: str, mtime_ns: int, size_bytes: int) -> dict:
    # mtime and size only key the cache so that an edited file is re-read.
    del mtime_ns, size_bytes
    with open(path_str, "rb") as handle:
        return tomllib.load(handle)


def _result(path, *, payload=None, error_kind=None, size_bytes=None) -> dict:
    result = {
        "ok": error_kind is None,
        "payload": payload if payload is not None else {},
        "path": str(path),
        "error_kind": error_kind,
    }
    if size_bytes is not None:
        result["size_bytes"] = int(size_bytes)
    return result


def load_toml_detailed(path: Path) -> dict:
    try:
        resolved = Path(path).expanduser().resolve()
        stat = resolved.stat()
    except FileNotFoundError:
        return _result(path, error_kind="missing")
    except OSError:
        return _result(path, error_kind="unreadable")

    size = int(stat.st_size)
    if size > _MAX_CONFIG_FILE_BYTES:
        return _result(resolved, error_kind="oversized", size_bytes=size)
    try:
        payload = _parse_toml_file(str(resolved), int(stat.st_mtime_ns), size)
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return _result(resolved, error_kind="invalid_toml")
    return _result(resolved, payload=payload, size_bytes=size)


def load_toml(path: Path) -> dict:
    payload = load_toml_detailed(path).get("payload")
    return payload if isinstance(payload, dict) else {}


def _load_from(path: Path, source: str) -> dict:
    result = load_toml_detailed(path)
    result["source"] = source
    return result


def load_packaged_runtime_defaults_detailed() -> dict:
    return _load_from(packaged_config_path(_RUNTIME_DEFAULTS_FILE), "packaged_toml")


def load_runtime_defaults_override_detailed() -> dict | None:
    override = env_config_path(RUNTIME_DEFAULTS_ENV_VAR)
    if override is None:
        return None
    return _load_from(override, "override_toml")


def load_runtime_defaults_detailed() -> dict:
    return load_runtime_defaults_override_detailed() or load_packaged_runtime_defaults_detailed()


def load_runtime_defaults() -> dict:
    payload = load_runtime_defaults_detailed().get("payload")
    return payload if isinstance(payload, dict) else {}


def load_scenario_library_detailed(path: Path | None = None) -> dict:
    if path is not None:
        return _load_from(Path(path), "explicit_path")
    override = env_config_path(SCENARIO_LIBRARY_ENV_VAR)
    if override is not None:
        return _load_from(override, "override_toml")
    return _load_from(packaged_config_path(_SCENARIO_LIBRARY_FILE), "packaged_toml")
