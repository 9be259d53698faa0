from __future__ import annotations

import pytest

from nowbench.config import runtime_defaults as runtime_defaults_mod


@pytest.fixture(autouse=True)
def _isolated_runtime_defaults(monkeypatch):
    monkeypatch.delenv("NOWBENCH_RUNTIME_DEFAULTS_PATH", raising=False)
    monkeypatch.delenv("NOWBENCH_SCENARIOS_PATH", raising=False)
    runtime_defaults_mod.clear_runtime_defaults_cache()
    runtime_defaults_mod.reset_runtime_defaults_load_telemetry()
    yield
    runtime_defaults_mod.clear_runtime_defaults_cache()
