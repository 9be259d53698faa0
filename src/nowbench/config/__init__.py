from nowbench.config.loader import (
    load_runtime_defaults,
    load_scenario_library_detailed,
    resolve_runtime_defaults_path,
    resolve_scenario_library_path,
)
from nowbench.config.runtime_defaults import (
    AuthDefaults,
    BuilderDefaults,
    RUNTIME_DEFAULTS_SCHEMA_VERSION,
    RuntimeDefaults,
    ServiceDefaults,
    TrialDefaults,
    clear_runtime_defaults_cache,
    get_runtime_defaults,
    parse_runtime_defaults,
    reset_runtime_defaults_load_telemetry,
    runtime_defaults_load_telemetry,
)

__all__ = [
    "resolve_runtime_defaults_path",
    "resolve_scenario_library_path",
    "load_runtime_defaults",
    "load_scenario_library_detailed",
    "AuthDefaults",
    "BuilderDefaults",
    "RUNTIME_DEFAULTS_SCHEMA_VERSION",
    "RuntimeDefaults",
    "ServiceDefaults",
    "TrialDefaults",
    "parse_runtime_defaults",
    "get_runtime_defaults",
    "clear_runtime_defaults_cache",
    "runtime_defaults_load_telemetry",
    "reset_runtime_defaults_load_telemetry",
]
