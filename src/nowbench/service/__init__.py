from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "AuthGateway",
    "GatewayResponse",
    "AuthMode",
    "AuthSession",
    "SessionTokenManager",
    "StaticTokenProvider",
    "TokenProvider",
    "PROXY_URL_ENV_VAR",
    "build_session",
    "resolve_proxy_url",
]

_SYMBOL_TO_MODULE = {
    "AuthGateway": "nowbench.service.gateway",
    "GatewayResponse": "nowbench.service.gateway",
    "AuthMode": "nowbench.service.auth",
    "AuthSession": "nowbench.service.auth",
    "SessionTokenManager": "nowbench.service.auth",
    "StaticTokenProvider": "nowbench.service.auth",
    "TokenProvider": "nowbench.service.auth",
    "PROXY_URL_ENV_VAR": "nowbench.service.transport",
    "build_session": "nowbench.service.transport",
    "resolve_proxy_url": "nowbench.service.transport",
}


def __getattr__(name: str) -> Any:
    module_name = _SYMBOL_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(name)
    module = import_module(module_name)
    return getattr(module, name)
