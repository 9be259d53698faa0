"""
Runtime defaults
================

Frozen settings for trials, authentication, HTTP and request building.
Values come from the packaged ``defaults.toml``, optionally overlaid by the
file in ``NOWBENCH_RUNTIME_DEFAULTS_PATH``. If the packaged file is
unusable the built-in dataclass defaults apply and the fallback is counted
in :func:`runtime_defaults_load_telemetry`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from typing import Any, Callable, Mapping

from nowbench.config.loader import (
    load_packaged_runtime_defaults_detailed,
    load_runtime_defaults_override_detailed,
)
from nowbench.util.logging import log_structured_event

RUNTIME_DEFAULTS_SCHEMA_VERSION = 1
_MAX_CONFIG_INT = 10_000_000
_MAX_CONFIG_STRING_LENGTH = 256
_DEFAULTS_LOG = logging.getLogger("nowbench.config.runtime_defaults")


@dataclass(frozen=True)
class TrialDefaults:
    single_resource_iterations: int = 3
    composite_iterations: int = 1
    settle_delay_ms: int = 100
    # Percent of a unit's progress bar owned by the Table API side.
    style_a_progress_share: int = 50


@dataclass(frozen=True)
class AuthDefaults:
    max_auth_retries: int = 2
    token_endpoint: str = "/api/elosa/api_benchmark/get-token"
    token_cache_seconds: int = 300
    token_refresh_threshold_seconds: int = 30


@dataclass(frozen=True)
class ServiceDefaults:
    default_connect_timeout_seconds: int = 10
    default_request_timeout_seconds: int = 60
    default_http_retry_total: int = 0
    table_api_path: str = "api/now/table"
    graphql_api_path: str = "api/now/graphql"


@dataclass(frozen=True)
class BuilderDefaults:
    max_record_limit: int = 10_000
    max_composite_calls: int = 10
    max_query_complexity: int = 500
    validation_query_complexity: int = 1000
    validation_record_limit: int = 50
    default_order_by: str = "sys_id"


@dataclass(frozen=True)
class RuntimeDefaults:
    trial_defaults: TrialDefaults
    auth_defaults: AuthDefaults
    service_defaults: ServiceDefaults
    builder_defaults: BuilderDefaults


_BUILTIN_RUNTIME_DEFAULTS = RuntimeDefaults(
    trial_defaults=TrialDefaults(),
    auth_defaults=AuthDefaults(),
    service_defaults=ServiceDefaults(),
    builder_defaults=BuilderDefaults(),
)


def _as_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _positive(raw: Any) -> int | None:
    value = _as_int(raw)
    if value is None or value <= 0:
        return None
    return min(value, _MAX_CONFIG_INT)


def _non_negative(raw: Any) -> int | None:
    value = _as_int(raw)
    if value is None or value < 0:
        return None
    return min(value, _MAX_CONFIG_INT)


def _percent(raw: Any) -> int | None:
    value = _positive(raw)
    if value is None or value >= 100:
        return None
    return value


def _short_text(raw: Any) -> str | None:
    if raw is None:
        return None
    value = str(raw).strip()
    if not value or len(value) > _MAX_CONFIG_STRING_LENGTH:
        return None
    return value


# Iteration counts accept 0 here; the executor rejects such plans before
# sending anything.
_FIELD_RULES: dict[str, dict[str, Callable[[Any], Any]]] = {
    "trial_defaults": {
        "single_resource_iterations": _non_negative,
        "composite_iterations": _non_negative,
        "settle_delay_ms": _non_negative,
        "style_a_progress_share": _percent,
    },
    "auth_defaults": {
        "max_auth_retries": _non_negative,
        "token_endpoint": _short_text,
        "token_cache_seconds": _positive,
        "token_refresh_threshold_seconds": _non_negative,
    },
    "service_defaults": {
        "default_connect_timeout_seconds": _positive,
        "default_request_timeout_seconds": _positive,
        "default_http_retry_total": _non_negative,
        "table_api_path": _short_text,
        "graphql_api_path": _short_text,
    },
    "builder_defaults": {
        "max_record_limit": _positive,
        "max_composite_calls": _positive,
        "max_query_complexity": _positive,
        "validation_query_complexity": _positive,
        "validation_record_limit": _positive,
        "default_order_by": _short_text,
    },
}


def _overlay_section(section, raw: Any, rules):
    if not isinstance(raw, Mapping):
        return section
    changes = {}
    for item in fields(section):
        if item.name not in raw:
            continue
        parsed = rules[item.name](raw[item.name])
        if parsed is not None:
            changes[item.name] = parsed
    return replace(section, **changes) if changes else section


def parse_runtime_defaults(payload: Mapping[str, Any] | None, *, base: RuntimeDefaults | None = None) -> RuntimeDefaults:
    """
    Overlay a TOML payload on ``base`` (the built-in defaults when omitted).

    Malformed or out-of-range values keep the base value field by field, so a
    partial file only changes what it names.
    """
    result = base or _BUILTIN_RUNTIME_DEFAULTS
    root = payload if isinstance(payload, Mapping) else {}
    for section_name, rules in _FIELD_RULES.items():
        section = _overlay_section(getattr(result, section_name), root.get(section_name), rules)
        result = replace(result, **{section_name: section})
    return result


_TELEMETRY: dict[str, object] = {}


def reset_runtime_defaults_load_telemetry() -> None:
    _TELEMETRY.clear()
    _TELEMETRY.update(source="unknown", fallback_activations=0, error_kind=None, schema_status="unknown")


reset_runtime_defaults_load_telemetry()


def runtime_defaults_load_telemetry() -> dict[str, object]:
    return dict(_TELEMETRY)


def _record_source(source: str, *, schema_status: str, error_kind: str | None = None, fallback: bool = False) -> None:
    if fallback:
        _TELEMETRY["fallback_activations"] = int(_TELEMETRY["fallback_activations"]) + 1
    _TELEMETRY.update(source=source, error_kind=error_kind, schema_status=schema_status)
    log_structured_event(
        _DEFAULTS_LOG,
        logging.WARNING if fallback else logging.DEBUG,
        "runtime_defaults_source",
        source=source,
        schema_status=schema_status,
        error_kind=error_kind,
        used_fallback=fallback,
        fallback_activations=_TELEMETRY["fallback_activations"],
    )


def _schema_status(payload: Mapping[str, Any], *, required: bool) -> str:
    meta = payload.get("meta")
    raw = meta.get("schema_version") if isinstance(meta, Mapping) else None
    if raw is None:
        return "missing" if required else "absent"
    return "ok" if _as_int(raw) == RUNTIME_DEFAULTS_SCHEMA_VERSION else "mismatch"


def _usable_payload(result: Mapping[str, Any]) -> Mapping[str, Any] | None:
    payload = result.get("payload")
    if result.get("ok", False) and isinstance(payload, Mapping):
        return payload
    return None


@lru_cache(maxsize=1)
def get_runtime_defaults() -> RuntimeDefaults:
    packaged = load_packaged_runtime_defaults_detailed()
    packaged_payload = _usable_payload(packaged)
    if packaged_payload is None:
        error_kind = packaged.get("error_kind")
        reason = f"packaged_{error_kind}" if isinstance(error_kind, str) else "packaged_load_error"
        _record_source("builtin_fallback", schema_status="missing", error_kind=reason, fallback=True)
        return _BUILTIN_RUNTIME_DEFAULTS

    status = _schema_status(packaged_payload, required=True)
    if status != "ok":
        reason = "missing_packaged_schema" if status == "missing" else "packaged_schema_mismatch"
        _record_source("builtin_fallback", schema_status=status, error_kind=reason, fallback=True)
        return _BUILTIN_RUNTIME_DEFAULTS

    defaults = parse_runtime_defaults(packaged_payload)
    override = load_runtime_defaults_override_detailed()
    if override is None:
        _record_source("packaged_toml", schema_status=status)
        return defaults

    override_payload = _usable_payload(override)
    if override_payload is None:
        error_kind = override.get("error_kind")
        reason = f"override_{error_kind}" if isinstance(error_kind, str) else "override_invalid_shape"
        _record_source("packaged_toml", schema_status=status, error_kind=reason)
        return defaults

    override_status = _schema_status(override_payload, required=False)
    if override_status == "mismatch":
        _record_source("packaged_toml", schema_status=override_status, error_kind="override_schema_mismatch")
        return defaults
    _record_source("override_toml", schema_status=override_status)
    return parse_runtime_defaults(override_payload, base=defaults)


def clear_runtime_defaults_cache() -> None:
    get_runtime_defaults.cache_clear()
