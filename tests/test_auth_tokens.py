import base64
import time
import unittest

import pytest
import requests

from nowbench.errors import TokenRefreshFailedError
from nowbench.service.auth import (
    AuthMode,
    AuthSession,
    SessionTokenManager,
    StaticTokenProvider,
    _parse_expiry,
    build_basic_auth_header,
)
from tests.fakes import FakeClock, FakeHttpSession, FakeResponse

TOKEN_URL = "https://dev.example.com/api/x_bench/get-token"


def _manager(http, clock, **kwargs):
    return SessionTokenManager(http, TOKEN_URL, clock=clock, **kwargs)


class TestAuthSession(unittest.TestCase):
    def test_with_token_returns_new_session(self):
        session = AuthSession.from_token("https://dev.example.com", "old")

        updated = session.with_token("new")

        self.assertEqual(session.token, "old")
        self.assertEqual(updated.token, "new")
        self.assertEqual(updated.base_url, session.base_url)
        self.assertIsNot(updated, session)

    def test_credential_headers_use_basic_auth(self):
        session = AuthSession.from_credentials("https://dev.example.com", "admin", "s3cret")

        headers = session.headers()

        self.assertEqual(session.mode, AuthMode.CREDENTIAL)
        encoded = headers["Authorization"].split(" ", 1)[1]
        self.assertEqual(base64.b64decode(encoded).decode("utf-8"), "admin:s3cret")
        self.assertNotIn("X-UserToken", headers)

    def test_token_headers(self):
        headers = AuthSession.from_token("https://dev.example.com", "tok").headers()

        self.assertEqual(headers["X-UserToken"], "tok")
        self.assertEqual(headers["X-Requested-With"], "XMLHttpRequest")

    def test_repr_hides_secrets(self):
        session = AuthSession.from_credentials("https://dev.example.com", "admin", "s3cret").with_token("tok123")

        self.assertNotIn("s3cret", repr(session))
        self.assertNotIn("tok123", repr(session))


def test_build_basic_auth_header_handles_unicode():
    header = build_basic_auth_header("usér", "pässword")
    assert base64.b64decode(header[len("Basic "):]).decode("utf-8") == "usér:pässword"


def test_static_token_provider_refresh_returns_same_token():
    provider = StaticTokenProvider("fixed")
    assert provider.current_token() == "fixed"
    assert provider.refresh() == "fixed"


def test_token_manager_caches_token_until_cache_window_ends():
    clock = FakeClock()
    http = FakeHttpSession(
        FakeResponse(200, {"result": {"token": "first"}}),
        FakeResponse(200, {"result": {"token": "second"}}),
    )
    manager = _manager(http, clock, cache_seconds=300)

    assert manager.current_token() == "first"
    clock.advance(299)
    assert manager.current_token() == "first"
    clock.advance(2)
    assert manager.current_token() == "second"
    assert len(http.calls) == 2
    assert http.calls[0]["url"] == TOKEN_URL


def test_token_manager_refreshes_near_explicit_expiry():
    clock = FakeClock(start=1_700_000_000.0)
    http = FakeHttpSession(
        FakeResponse(200, {"result": {"token": "first", "expires": "2023-11-14T22:14:00Z"}}),
        FakeResponse(200, {"token": "second"}),
    )
    manager = _manager(http, clock, cache_seconds=3600, refresh_threshold_seconds=30)

    assert manager.current_token() == "first"
    # 2023-11-14T22:14:00Z is 1_700_000_040; 30s threshold leaves a 10s window.
    clock.advance(11)
    assert manager.current_token() == "second"


@pytest.mark.parametrize("raw", ["2023-11-14T22:14:00Z", "2023-11-14T22:14:00", "2023-11-15T00:14:00+02:00"])
def test_parse_expiry_reads_offsetless_stamps_as_utc(monkeypatch, raw):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is unavailable on this platform")
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    try:
        assert _parse_expiry(raw) == 1_700_000_040.0
    finally:
        monkeypatch.undo()
        time.tzset()


def test_parse_expiry_ignores_blank_and_garbage():
    assert _parse_expiry("") is None
    assert _parse_expiry(None) is None
    assert _parse_expiry("next tuesday") is None


def test_token_manager_refresh_always_fetches():
    clock = FakeClock()
    http = FakeHttpSession(
        FakeResponse(200, {"result": {"token": "first"}}),
        FakeResponse(200, {"result": {"token": "second"}}),
    )
    manager = _manager(http, clock)

    manager.current_token()

    assert manager.refresh() == "second"
    assert manager.current_token() == "second"


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(500, reason="Server Error"),
        FakeResponse(200, content=b"not json"),
        FakeResponse(200, ["token"]),
        FakeResponse(200, {"error": "denied"}),
        FakeResponse(200, {"result": {}}),
    ],
)
def test_token_manager_rejects_unusable_responses(response):
    manager = _manager(FakeHttpSession(response), FakeClock())

    with pytest.raises(TokenRefreshFailedError):
        manager.current_token()


def test_token_manager_wraps_transport_errors():
    manager = _manager(FakeHttpSession(requests.Timeout("slow")), FakeClock())

    with pytest.raises(TokenRefreshFailedError) as excinfo:
        manager.current_token()

    assert isinstance(excinfo.value.cause, requests.Timeout)


def test_token_manager_clear_forces_next_fetch():
    http = FakeHttpSession(
        FakeResponse(200, {"result": {"token": "first"}}),
        FakeResponse(200, {"result": {"token": "second"}}),
    )
    manager = _manager(http, FakeClock())
    manager.current_token()

    manager.clear()

    assert manager.current_token() == "second"
