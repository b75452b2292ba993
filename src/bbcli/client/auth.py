"""
Bitbucket authentication for HTTPX.

Attaches the stored credential to every request and, for OAuth credentials,
recovers once from an expired access token by running the refresh-token grant
and replaying the original request.
"""

import base64
import logging
from collections.abc import Generator
from typing import Protocol

import httpx
from pydantic import ValidationError

from bbcli.client.deadline import deadline_hooks
from bbcli.shared.auth import BasicCredential, OAuthAppCredentials, OAuthCredential, OAuthToken
from bbcli.shared.exceptions import AuthConfigurationError, SessionExpiredError, TokenRefreshError

logger = logging.getLogger(__name__)

RELOGIN_HINT = "please run 'bb auth login' again"


class CredentialStore(Protocol):
    """Protocol for credential storage implementations."""

    def load(self) -> OAuthCredential | BasicCredential:
        """Load the stored credential, raising CredentialNotFoundError if there is none."""
        ...

    def save(self, credential: OAuthCredential | BasicCredential) -> None:
        """Persist the credential."""
        ...

    def clear(self) -> None:
        """Remove the stored credential; a no-op when nothing is stored."""
        ...


class TokenRefresher(Protocol):
    """Protocol for exchanging a refresh token for a new access token."""

    def refresh(self, client_id: str, client_secret: str, refresh_token: str) -> OAuthCredential:
        """Run the refresh-token grant, raising TokenRefreshError on failure."""
        ...


class OAuthTokenRefresher:
    """
    Token endpoint client.

    Both grants authenticate the consumer with HTTP Basic auth and send a
    form-encoded body, see https://datatracker.ietf.org/doc/html/rfc6749#section-6
    """

    def __init__(
        self,
        token_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.token_url = token_url
        self.timeout = timeout
        self.transport = transport

    def refresh(self, client_id: str, client_secret: str, refresh_token: str) -> OAuthCredential:
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        return self._grant(client_id, client_secret, data, "Token refresh").to_credential()

    def exchange_code(self, client_id: str, client_secret: str, code: str, redirect_uri: str) -> OAuthCredential:
        data = {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
        return self._grant(client_id, client_secret, data, "Token exchange").to_credential()

    def _grant(self, client_id: str, client_secret: str, data: dict[str, str], action: str) -> OAuthToken:
        try:
            with httpx.Client(
                timeout=self.timeout,
                transport=self.transport,
                event_hooks=deadline_hooks(self.timeout),
            ) as client:
                response = client.post(
                    self.token_url,
                    data=data,
                    auth=httpx.BasicAuth(client_id, client_secret),
                )
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"{action} failed: {e}") from e

        if response.status_code != 200:
            raise TokenRefreshError(f"{action} failed (HTTP {response.status_code}): {response.text}")

        try:
            return OAuthToken.model_validate_json(response.content)
        except ValidationError as e:
            raise TokenRefreshError(f"Failed to parse token response: {e}") from e


def basic_auth_header(username: str, password: str) -> str:
    userpass = f"{username}:{password}".encode()
    return "Basic " + base64.b64encode(userpass).decode()


class BitbucketAuth(httpx.Auth):
    """
    Authentication for httpx.

    The current credential is exposed as `credential` and is replaced after a
    successful refresh. At most two attempts are made per request: the
    original one and a single retry after refreshing.
    """

    # buffered so the retry resends the same bytes
    requires_request_body = True

    def __init__(
        self,
        credential: OAuthCredential | BasicCredential,
        store: CredentialStore,
        refresher: TokenRefresher,
        app_credentials: OAuthAppCredentials | None = None,
    ):
        self.credential = credential
        self.store = store
        self.refresher = refresher
        self.app_credentials = app_credentials

    def authorization_header(self) -> str:
        credential = self.credential
        if isinstance(credential, BasicCredential):
            return basic_auth_header(credential.username, credential.access_token)
        return f"Bearer {credential.access_token}"

    def can_refresh(self) -> bool:
        return isinstance(self.credential, OAuthCredential) and self.credential.can_refresh()

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = self.authorization_header()
        response = yield request

        if response.status_code != 401 or not self.can_refresh():
            return

        logger.debug(f"{request.method} {request.url} returned 401, refreshing access token")
        self.refresh_credential()

        # a second 401 is returned to the caller as-is
        request.headers["Authorization"] = self.authorization_header()
        yield request

    def refresh_credential(self) -> OAuthCredential:
        """Refresh the OAuth credential, persist it, then swap it in."""
        credential = self.credential
        if not isinstance(credential, OAuthCredential) or not credential.refresh_token:
            raise AuthConfigurationError(f"stored credential has no refresh token; {RELOGIN_HINT}")

        if self.app_credentials is None:
            raise AuthConfigurationError(
                f"OAuth consumer not configured, run 'bb auth setup' first; {RELOGIN_HINT}"
            )

        try:
            refreshed = self.refresher.refresh(
                self.app_credentials.client_id,
                self.app_credentials.client_secret,
                credential.refresh_token,
            )
        except TokenRefreshError as e:
            logger.warning(f"Token refresh failed: {e}")
            raise SessionExpiredError(f"session expired, {RELOGIN_HINT}: {e}") from e

        if not refreshed.refresh_token:
            refreshed = refreshed.model_copy(update={"refresh_token": credential.refresh_token})

        self.store.save(refreshed)
        self.credential = refreshed
        logger.debug("Token refresh successful")
        return refreshed
