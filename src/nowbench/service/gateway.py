from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import requests

from nowbench.errors import AuthFailedError, NetworkError, RequestFailedError, ValidationError
from nowbench.query.builder import RequestDescriptor, RequestStyle
from nowbench.service.auth import AuthSession, TokenProvider
from nowbench.util.json import json_dumps_bytes, json_loads
from nowbench.util.logging import log_structured_event

_GATEWAY_LOG = logging.getLogger("nowbench.service.gateway")
DEFAULT_MAX_AUTH_RETRIES = 2
DEFAULT_TIMEOUT = (10.0, 60.0)
_AUTH_STATUS_CODES = frozenset({401, 403})
_BODY_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    body: Any
    # Raw bytes on the wire; the compact JSON size is measured by the caller.
    content_length: int
    auth_retries: int
    session: AuthSession


def _join(base_url: str, path: str) -> str:
    base = str(base_url or "").rstrip("/")
    return f"{base}/{path.lstrip('/')}"


def resolve_url(target: str, session: AuthSession) -> str:
    """
    Token sessions always talk to their own base URL; any scheme and host on
    the target are dropped. Credential sessions send absolute targets as given.
    """
    if session.is_token_mode:
        parts = urlsplit(target)
        path = parts.path
        if parts.query:
            path = f"{path}?{parts.query}"
        return _join(session.base_url, path)
    if target.startswith(("http://", "https://")):
        return target
    return _join(session.base_url, target)


def _body_preview(response) -> str:
    try:
        text = response.text or ""
    except (UnicodeDecodeError, LookupError):
        return ""
    text = " ".join(text.split())
    if len(text) > _BODY_PREVIEW_CHARS:
        return text[:_BODY_PREVIEW_CHARS] + "..."
    return text


class AuthGateway:
    """
    Sends one request descriptor under an :class:`AuthSession`.

    401 and 403 answers in token mode trigger a token refresh and a retry of
    the same descriptor, at most ``max_auth_retries`` times. Transport
    failures are never retried here.
    """

    def __init__(
        self,
        http_session: requests.Session,
        token_provider: TokenProvider | None = None,
        *,
        max_auth_retries: int = DEFAULT_MAX_AUTH_RETRIES,
        timeout=DEFAULT_TIMEOUT,
    ):
        self.http_session = http_session
        self.token_provider = token_provider
        self.max_auth_retries = max(0, int(max_auth_retries))
        self.timeout = timeout

    def _ensure_token(self, session: AuthSession) -> AuthSession:
        if session.is_token_mode and not session.token and self.token_provider is not None:
            return session.with_token(self.token_provider.current_token())
        return session

    def _send(self, descriptor: RequestDescriptor, session: AuthSession):
        headers = dict(descriptor.headers)
        headers.update(session.headers())
        data = None
        if descriptor.body is not None:
            data = json_dumps_bytes(descriptor.body)
        url = resolve_url(descriptor.target, session)
        try:
            return self.http_session.request(
                descriptor.method,
                url,
                headers=headers,
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Network error occurred calling {descriptor.method} {url}", cause=exc) from exc

    def execute(self, descriptor: RequestDescriptor, session: AuthSession) -> GatewayResponse:
        if descriptor.errors:
            raise ValidationError("Refusing to send an invalid request", errors=descriptor.errors)

        session = self._ensure_token(session)
        auth_retries = 0
        while True:
            response = self._send(descriptor, session)
            status = int(response.status_code)
            if status not in _AUTH_STATUS_CODES:
                break
            if session.is_token_mode and self.token_provider is not None and auth_retries < self.max_auth_retries:
                auth_retries += 1
                log_structured_event(
                    _GATEWAY_LOG,
                    logging.WARNING,
                    "auth_refresh_retry",
                    status_code=status,
                    attempt=auth_retries,
                    max_auth_retries=self.max_auth_retries,
                )
                session = session.with_token(self.token_provider.refresh())
                continue
            raise AuthFailedError(f"Authentication failed: {status} {response.reason or ''}".rstrip(), status_code=status)

        if status >= 400:
            raise RequestFailedError(
                f"Request failed: {status} {_body_preview(response)}".rstrip(),
                status_code=status,
            )
        try:
            body = json_loads(response.content) if response.content else None
        except ValueError as exc:
            raise RequestFailedError("Response body is not valid JSON", status_code=status, cause=exc) from exc

        if descriptor.style is RequestStyle.GRAPHQL and isinstance(body, dict):
            if body.get("errors") and not body.get("data"):
                messages = [
                    str(item.get("message", item)) if isinstance(item, dict) else str(item)
                    for item in body["errors"]
                ]
                raise RequestFailedError(f"GraphQL errors: {'; '.join(messages)}", status_code=status)

        content_length = len(response.content or b"")
        log_structured_event(
            _GATEWAY_LOG,
            logging.DEBUG,
            "gateway_response",
            style=descriptor.style.value,
            status_code=status,
            content_length=content_length,
            auth_retries=auth_retries,
        )
        return GatewayResponse(
            status_code=status,
            body=body,
            content_length=content_length,
            auth_retries=auth_retries,
            session=session,
        )
