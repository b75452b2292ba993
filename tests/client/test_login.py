from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from bbcli.client.login import CALLBACK_PATH, build_authorize_url, login, start_callback_server
from bbcli.shared.auth import OAuthAppCredentials, OAuthCredential
from bbcli.shared.exceptions import LoginError

AUTHORIZE_URL = "https://bitbucket.org/site/oauth2/authorize"


class MockCodeExchanger:
    def __init__(self):
        self.calls: list[tuple[str, str, str, str]] = []

    def exchange_code(self, client_id: str, client_secret: str, code: str, redirect_uri: str) -> OAuthCredential:
        self.calls.append((client_id, client_secret, code, redirect_uri))
        return OAuthCredential(access_token="A1", refresh_token="R1")


@pytest.fixture
def callback_server():
    server = start_callback_server()
    yield server
    server.shutdown()
    server.server_close()


def callback_url(server, query: str) -> str:
    return f"http://127.0.0.1:{server.port}{CALLBACK_PATH}?{query}"


def test_build_authorize_url():
    url = build_authorize_url(AUTHORIZE_URL, "my key", "http://localhost:4321/callback")

    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == AUTHORIZE_URL
    assert parse_qs(parsed.query) == {
        "client_id": ["my key"],
        "response_type": ["code"],
        "redirect_uri": ["http://localhost:4321/callback"],
    }


def test_callback_receives_code(callback_server):
    response = httpx.get(callback_url(callback_server, "code=abc123"), trust_env=False)

    assert response.status_code == 200
    assert "Authentication Successful" in response.text
    assert callback_server.wait_for_code(timeout=5) == "abc123"


def test_callback_error_is_escaped(callback_server):
    query = "error=access_denied&error_description=%3Cscript%3Ex%3C/script%3E"
    response = httpx.get(callback_url(callback_server, query), trust_env=False)

    assert response.status_code == 400
    assert "<script>" not in response.text
    assert "&lt;script&gt;" in response.text
    with pytest.raises(LoginError, match="authorization failed: <script>x</script>"):
        callback_server.wait_for_code(timeout=5)


def test_callback_unknown_path(callback_server):
    response = httpx.get(f"http://127.0.0.1:{callback_server.port}/favicon.ico", trust_env=False)
    assert response.status_code == 404


def test_wait_for_code_times_out(callback_server):
    with pytest.raises(LoginError, match="timed out"):
        callback_server.wait_for_code(timeout=0.05)


def test_login_exchanges_code():
    exchanger = MockCodeExchanger()
    opened: list[str] = []

    def on_auth(url: str) -> None:
        opened.append(url)
        redirect_uri = parse_qs(urlparse(url).query)["redirect_uri"][0]
        port = urlparse(redirect_uri).port
        httpx.get(f"http://127.0.0.1:{port}{CALLBACK_PATH}?code=the-code", trust_env=False)

    credential = login(
        OAuthAppCredentials(client_id="key", client_secret="secret"),
        exchanger,  # type: ignore[arg-type]
        AUTHORIZE_URL,
        on_auth=on_auth,
        timeout=5,
    )

    assert credential.access_token == "A1"
    assert len(opened) == 1
    client_id, client_secret, code, redirect_uri = exchanger.calls[0]
    assert (client_id, client_secret, code) == ("key", "secret", "the-code")
    assert redirect_uri.startswith("http://localhost:") and redirect_uri.endswith(CALLBACK_PATH)
