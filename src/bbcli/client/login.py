"""
OAuth 2.0 authorization code login through the user's browser.

A loopback HTTP server on a random port receives the redirect carrying the
authorization code, which is then exchanged at the token endpoint.
"""

import html
import logging
import queue
import threading
import webbrowser
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from bbcli.client.auth import OAuthTokenRefresher
from bbcli.shared.auth import OAuthAppCredentials, OAuthCredential
from bbcli.shared.exceptions import LoginError

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
LOGIN_TIMEOUT = 300.0

SUCCESS_HTML = (
    "<html><body><h2>Authentication Successful!</h2>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)
FAILURE_HTML = (
    "<html><body><h2>Authentication Failed</h2>"
    "<p>{message}</p><p>You can close this window.</p></body></html>"
)


def build_authorize_url(authorize_url: str, client_id: str, redirect_uri: str) -> str:
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
    }
    return f"{authorize_url}?{urlencode(params)}"


class _CallbackHandler(BaseHTTPRequestHandler):
    server: "CallbackServer"

    def do_GET(self) -> None:  # noqa: N802
        url = urlparse(self.path)
        if url.path != CALLBACK_PATH:
            self._respond(404, "Not found")
            return

        qs = parse_qs(url.query)
        code = qs.get("code", [""])[0]
        if code:
            self._respond(200, SUCCESS_HTML)
            self.server.results.put((code, None))
            return

        message = (qs.get("error_description") or qs.get("error") or ["no authorization code received"])[0]
        # the message comes from the query string
        self._respond(400, FAILURE_HTML.format(message=html.escape(message)))
        self.server.results.put((None, message))

    def _respond(self, status: int, page: str) -> None:
        body = page.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("callback server: " + format, *args)


class CallbackServer(HTTPServer):
    """Loopback server that records the first authorization redirect it receives."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        super().__init__((host, port), _CallbackHandler)
        self.results: queue.Queue[tuple[str | None, str | None]] = queue.Queue()

    @property
    def port(self) -> int:
        return self.server_address[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}{CALLBACK_PATH}"

    def wait_for_code(self, timeout: float = LOGIN_TIMEOUT) -> str:
        try:
            code, error = self.results.get(timeout=timeout)
        except queue.Empty:
            raise LoginError(f"authorization timed out after {timeout:.0f} seconds") from None
        if error is not None or not code:
            raise LoginError(f"authorization failed: {error}")
        return code


def start_callback_server() -> CallbackServer:
    server = CallbackServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.debug(f"Callback server listening on port {server.port}")
    return server


def login(
    app_credentials: OAuthAppCredentials,
    refresher: OAuthTokenRefresher,
    authorize_url: str,
    on_auth: Callable[[str], None] | None = None,
    timeout: float = LOGIN_TIMEOUT,
) -> OAuthCredential:
    """
    Run the authorization code flow and return the new credential.

    `on_auth` receives the authorization URL; by default it is opened with
    the `webbrowser` module.
    """
    server = start_callback_server()
    try:
        url = build_authorize_url(authorize_url, app_credentials.client_id, server.redirect_uri)
        if on_auth:
            on_auth(url)
        else:
            webbrowser.open(url)
        code = server.wait_for_code(timeout)
    finally:
        server.shutdown()
        server.server_close()

    logger.debug("Exchanging authorization code for tokens")
    return refresher.exchange_code(
        app_credentials.client_id,
        app_credentials.client_secret,
        code,
        server.redirect_uri,
    )
