from nowbench._version import VERSION, __version__

from importlib import import_module
from typing import Any

__all__ = [
    "VERSION",
    "__version__",
    "AuthGateway",
    "AuthSession",
    "BenchmarkRunner",
    "CategoryConfig",
    "DualStyleExecutor",
    "ScenarioLibrary",
    "TrialRunner",
    "load_scenario_library",
    "write_report_json",
]

_SYMBOL_TO_MODULE = {
    "AuthGateway": "nowbench.service.gateway",
    "AuthSession": "nowbench.service.auth",
    "BenchmarkRunner": "nowbench.benchmark.runner",
    "CategoryConfig": "nowbench.benchmark.expander",
    "DualStyleExecutor": "nowbench.benchmark.executor",
    "ScenarioLibrary": "nowbench.scenarios",
    "TrialRunner": "nowbench.benchmark.trials",
    "load_scenario_library": "nowbench.scenarios",
    "write_report_json": "nowbench.export.report",
}


def __getattr__(name: str) -> Any:
    module_name = _SYMBOL_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(name)
    module = import_module(module_name)
    return getattr(module, name)
