from __future__ import annotations

import base64
import enum
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol

import requests

from nowbench.errors import TokenRefreshFailedError
from nowbench.util.json import json_loads
from nowbench.util.logging import log_structured_event

_AUTH_LOG = logging.getLogger("nowbench.service.auth")
DEFAULT_TOKEN_CACHE_SECONDS = 300
DEFAULT_TOKEN_REFRESH_THRESHOLD_SECONDS = 30


class AuthMode(str, enum.Enum):
    CREDENTIAL = "credential"
    TOKEN = "token"


@dataclass(frozen=True)
class AuthSession:
    """
    Immutable authentication context for outbound calls.
    ====================================================

    A token refresh never mutates a session: :meth:`with_token` returns a new
    value, and whoever holds the session decides whether to carry it forward.
    """

    mode: AuthMode
    base_url: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    token: str | None = field(default=None, repr=False)

    @classmethod
    def from_credentials(cls, base_url: str, username: str, password: str) -> "AuthSession":
        return cls(mode=AuthMode.CREDENTIAL, base_url=base_url, username=username, password=password)

    @classmethod
    def from_token(cls, base_url: str, token: str) -> "AuthSession":
        return cls(mode=AuthMode.TOKEN, base_url=base_url, token=token)

    @property
    def is_token_mode(self) -> bool:
        return self.mode is AuthMode.TOKEN

    def with_token(self, token: str) -> "AuthSession":
        return replace(self, mode=AuthMode.TOKEN, token=token)

    def headers(self) -> dict[str, str]:
        if self.is_token_mode:
            return build_token_headers(self.token or "")
        return {"Authorization": build_basic_auth_header(self.username or "", self.password or "")}


def build_basic_auth_header(username: str, password: str) -> str:
    payload = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(payload).decode("ascii")


def build_token_headers(token: str) -> dict[str, str]:
    return {"X-UserToken": token, "X-Requested-With": "XMLHttpRequest"}


class TokenProvider(Protocol):
    def current_token(self) -> str: ...

    def refresh(self) -> str: ...


class StaticTokenProvider:
    """Hands out a fixed token; ``refresh`` cannot produce a new one."""

    def __init__(self, token: str):
        self._token = str(token)

    def current_token(self) -> str:
        return self._token

    def refresh(self) -> str:
        return self._token


def _parse_expiry(raw) -> float | None:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    # Token endpoints report UTC; an offset-less stamp is not local time.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class SessionTokenManager:
    """
    Fetches and caches a session token from the instance token endpoint.

    A cached token is reused for ``cache_seconds`` and treated as stale once
    it is within ``refresh_threshold_seconds`` of an explicit expiry. Fetches
    are serialised by a lock; ``refresh`` always fetches again, even when
    another caller has just refreshed.
    """

    def __init__(
        self,
        http_session: requests.Session,
        token_url: str,
        *,
        cache_seconds: int = DEFAULT_TOKEN_CACHE_SECONDS,
        refresh_threshold_seconds: int = DEFAULT_TOKEN_REFRESH_THRESHOLD_SECONDS,
        timeout=None,
        clock=time.time,
    ):
        self.http_session = http_session
        self.token_url = token_url
        self.cache_seconds = float(cache_seconds)
        self.refresh_threshold_seconds = float(refresh_threshold_seconds)
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._fetched_at = 0.0
        self._expires_at: float | None = None

    def _is_valid(self, now: float) -> bool:
        if self._token is None:
            return False
        if now - self._fetched_at > self.cache_seconds:
            return False
        if self._expires_at is not None and now > self._expires_at - self.refresh_threshold_seconds:
            return False
        return True

    def current_token(self) -> str:
        with self._lock:
            if self._is_valid(self._clock()):
                return self._token  # type: ignore[return-value]
            return self._fetch()

    def refresh(self) -> str:
        with self._lock:
            self._token = None
            self._expires_at = None
            return self._fetch()

    def clear(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = None

    def _fetch(self) -> str:
        log_structured_event(_AUTH_LOG, logging.DEBUG, "token_fetch_start", url=self.token_url)
        try:
            response = self.http_session.get(
                self.token_url,
                headers={"Content-Type": "application/json", "X-Requested-With": "XMLHttpRequest"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TokenRefreshFailedError("Failed to retrieve session token", cause=exc) from exc

        status = int(response.status_code)
        if status >= 400:
            raise TokenRefreshFailedError(f"Token fetch failed: {status} {response.reason}", status_code=status)
        try:
            payload = json_loads(response.content)
        except ValueError as exc:
            raise TokenRefreshFailedError("Token endpoint returned a non-JSON body", status_code=status, cause=exc) from exc
        if not isinstance(payload, dict):
            raise TokenRefreshFailedError("Token endpoint returned an unexpected payload", status_code=status)
        if payload.get("error"):
            raise TokenRefreshFailedError(f"Token endpoint error: {payload['error']}", status_code=status)

        result = payload.get("result") if isinstance(payload.get("result"), dict) else {}
        token = result.get("token") or payload.get("token")
        if not token:
            raise TokenRefreshFailedError("No token received from endpoint", status_code=status)

        self._token = str(token)
        self._fetched_at = self._clock()
        self._expires_at = _parse_expiry(result.get("expires") or payload.get("expires"))
        log_structured_event(
            _AUTH_LOG,
            logging.INFO,
            "token_fetch_done",
            url=self.token_url,
            has_expiry=self._expires_at is not None,
        )
        return self._token
