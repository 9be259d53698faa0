import pytest
import requests

from nowbench.errors import AuthFailedError, NetworkError, RequestFailedError, ValidationError
from nowbench.query.builder import build_graphql_request, build_table_request
from nowbench.service.auth import AuthSession, StaticTokenProvider
from nowbench.service.gateway import AuthGateway, resolve_url
from tests.fakes import FakeHttpSession, FakeResponse


class _RotatingTokens:
    def __init__(self, *tokens):
        self.tokens = list(tokens)
        self.refreshes = 0

    def current_token(self):
        return self.tokens[0]

    def refresh(self):
        self.refreshes += 1
        return self.tokens[self.refreshes]


BASE = "https://dev.example.com"


def test_resolve_url_joins_relative_targets():
    session = AuthSession.from_credentials(BASE + "/", "admin", "pw")
    assert resolve_url("api/now/table/incident?sysparm_limit=1", session) == (
        "https://dev.example.com/api/now/table/incident?sysparm_limit=1"
    )


def test_resolve_url_keeps_absolute_target_in_credential_mode():
    session = AuthSession.from_credentials(BASE, "admin", "pw")
    assert resolve_url("https://other.example.com/api/now/graphql", session) == "https://other.example.com/api/now/graphql"


def test_resolve_url_drops_foreign_host_in_token_mode():
    session = AuthSession.from_token(BASE, "tok")
    assert resolve_url("https://other.example.com/api/now/table/incident?a=1", session) == (
        "https://dev.example.com/api/now/table/incident?a=1"
    )


def test_execute_sends_basic_auth_and_decodes_json():
    raw = FakeResponse(200, {"result": [{"sys_id": "a1"}]})
    http = FakeHttpSession(raw)
    gateway = AuthGateway(http, timeout=(3.0, 7.0))
    session = AuthSession.from_credentials(BASE, "admin", "pw")

    response = gateway.execute(build_table_request("incident", ["number"], limit=5), session)

    assert response.status_code == 200
    assert response.body == {"result": [{"sys_id": "a1"}]}
    assert response.content_length == len(raw.content)
    assert response.auth_retries == 0
    assert response.session is session
    call = http.calls[0]
    assert call["method"] == "GET"
    assert call["url"].startswith("https://dev.example.com/api/now/table/incident?")
    assert call["headers"]["Authorization"].startswith("Basic ")
    assert call["timeout"] == (3.0, 7.0)
    assert call["data"] is None


def test_execute_posts_graphql_document_with_token_headers():
    http = FakeHttpSession(FakeResponse(200, {"data": {"GlideRecord_Query": {}}}))
    gateway = AuthGateway(http, StaticTokenProvider("tok"))

    gateway.execute(build_graphql_request("incident", ["number"], limit=5), AuthSession.from_token(BASE, "tok"))

    call = http.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://dev.example.com/api/now/graphql"
    assert call["headers"]["X-UserToken"] == "tok"
    assert b"GlideRecord_Query" in call["data"]


def test_execute_refreshes_token_once_after_401():
    http = FakeHttpSession(
        FakeResponse(401, {"error": "expired"}, reason="Unauthorized"),
        FakeResponse(200, {"result": []}),
    )
    tokens = _RotatingTokens("old", "new")
    gateway = AuthGateway(http, tokens, max_auth_retries=2)
    session = AuthSession.from_token(BASE, "old")

    response = gateway.execute(build_table_request("incident", limit=1), session)

    assert response.auth_retries == 1
    assert tokens.refreshes == 1
    assert [call["headers"]["X-UserToken"] for call in http.calls] == ["old", "new"]
    assert response.session.token == "new"
    assert session.token == "old"


def test_execute_gives_up_after_max_auth_retries():
    http = FakeHttpSession(*[FakeResponse(403, reason="Forbidden") for _ in range(3)])
    gateway = AuthGateway(http, _RotatingTokens("a", "b", "c"), max_auth_retries=2)

    with pytest.raises(AuthFailedError) as excinfo:
        gateway.execute(build_table_request("incident", limit=1), AuthSession.from_token(BASE, "a"))

    assert excinfo.value.status_code == 403
    assert len(http.calls) == 3


def test_execute_never_refreshes_in_credential_mode():
    http = FakeHttpSession(FakeResponse(401, reason="Unauthorized"))
    tokens = _RotatingTokens("a", "b")
    gateway = AuthGateway(http, tokens)

    with pytest.raises(AuthFailedError):
        gateway.execute(build_table_request("incident", limit=1), AuthSession.from_credentials(BASE, "admin", "bad"))

    assert tokens.refreshes == 0
    assert len(http.calls) == 1


def test_execute_fetches_token_when_session_has_none():
    http = FakeHttpSession(FakeResponse(200, {"result": []}))
    gateway = AuthGateway(http, StaticTokenProvider("fresh"))

    response = gateway.execute(build_table_request("incident", limit=1), AuthSession.from_token(BASE, ""))

    assert http.calls[0]["headers"]["X-UserToken"] == "fresh"
    assert response.session.token == "fresh"


def test_execute_wraps_transport_errors():
    http = FakeHttpSession(requests.ConnectionError("refused"))
    gateway = AuthGateway(http)

    with pytest.raises(NetworkError) as excinfo:
        gateway.execute(build_table_request("incident", limit=1), AuthSession.from_credentials(BASE, "a", "b"))

    assert isinstance(excinfo.value.cause, requests.ConnectionError)


def test_execute_raises_on_server_error_with_body_preview():
    http = FakeHttpSession(FakeResponse(500, {"error": {"message": "boom"}}, reason="Server Error"))
    gateway = AuthGateway(http)

    with pytest.raises(RequestFailedError, match="500") as excinfo:
        gateway.execute(build_table_request("incident", limit=1), AuthSession.from_credentials(BASE, "a", "b"))

    assert excinfo.value.status_code == 500
    assert "boom" in str(excinfo.value)


def test_execute_raises_on_non_json_body():
    http = FakeHttpSession(FakeResponse(200, content=b"<html>login</html>"))
    gateway = AuthGateway(http)

    with pytest.raises(RequestFailedError, match="not valid JSON"):
        gateway.execute(build_table_request("incident", limit=1), AuthSession.from_credentials(BASE, "a", "b"))


def test_execute_raises_on_graphql_errors_without_data():
    http = FakeHttpSession(FakeResponse(200, {"errors": [{"message": "Field 'nope' undefined"}]}))
    gateway = AuthGateway(http)

    with pytest.raises(RequestFailedError, match="nope"):
        gateway.execute(build_graphql_request("incident", ["number"], limit=1), AuthSession.from_credentials(BASE, "a", "b"))


def test_execute_refuses_invalid_descriptor_without_sending():
    http = FakeHttpSession()
    gateway = AuthGateway(http)

    with pytest.raises(ValidationError) as excinfo:
        gateway.execute(build_table_request("bad table", limit=1), AuthSession.from_credentials(BASE, "a", "b"))

    assert excinfo.value.errors[0][0] == "table"
    assert http.calls == []
