"""HTTP session factory shared by the gateway and the token manager."""

from __future__ import annotations

import os

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from nowbench._version import VERSION

PROXY_URL_ENV_VAR = "NOWBENCH_PROXY_URL"
DEFAULT_USER_AGENT = f"nowbench/{VERSION}"
# Transport-level retries would fold hidden attempts into a measured duration.
DEFAULT_HTTP_RETRY_TOTAL = 0
DEFAULT_HTTP_RETRY_BACKOFF_SECONDS = 0.4
DEFAULT_HTTP_RETRY_STATUS_CODES = (429, 500, 502, 503, 504)
DEFAULT_HTTP_RETRY_METHODS = ("GET", "POST")
_POOL_SIZE = 4


def resolve_proxy_url(proxy_url: str | None = None) -> str | None:
    """An explicit value wins (blank disables the proxy); otherwise ``NOWBENCH_PROXY_URL``."""
    raw = proxy_url if proxy_url is not None else os.getenv(PROXY_URL_ENV_VAR, "")
    return str(raw).strip() or None


def resolve_timeout(connect_seconds, read_seconds) -> tuple[float, float]:
    timeout = (float(connect_seconds), float(read_seconds))
    if min(timeout) <= 0:
        raise ValueError(f"timeouts must be positive, got {timeout!r}")
    return timeout


def _retry_adapter(retry_total: int) -> HTTPAdapter:
    retries = Retry(
        total=max(0, int(retry_total)),
        backoff_factor=DEFAULT_HTTP_RETRY_BACKOFF_SECONDS,
        status_forcelist=DEFAULT_HTTP_RETRY_STATUS_CODES,
        allowed_methods=DEFAULT_HTTP_RETRY_METHODS,
        raise_on_status=False,
    )
    return HTTPAdapter(max_retries=retries, pool_connections=_POOL_SIZE, pool_maxsize=_POOL_SIZE)


def build_session(
    *,
    proxy_url: str | None = None,
    user_agent: str | None = DEFAULT_USER_AGENT,
    retry_total: int = DEFAULT_HTTP_RETRY_TOTAL,
) -> requests.Session:
    session = requests.Session()
    proxy = resolve_proxy_url(proxy_url)
    if proxy:
        # An explicit proxy must not be overridden by HTTP(S)_PROXY from the environment.
        session.proxies = {"http": proxy, "https": proxy}
        session.trust_env = False

    adapter = _retry_adapter(retry_total)
    for scheme in ("http://", "https://"):
        session.mount(scheme, adapter)

    session.headers["Accept"] = "application/json"
    if user_agent:
        session.headers["User-Agent"] = user_agent
    return session
