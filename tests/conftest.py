import time
from collections.abc import Iterator

import httpx
import pytest

from bbcli.client.storage import CLIConfig
from bbcli.shared.auth import BasicCredential, OAuthCredential
from bbcli.shared.exceptions import CredentialNotFoundError

API_URL = "https://api.bitbucket.org/2.0"


class MockCredentialStore:
    """In-memory credential store recording every save."""

    def __init__(
        self,
        credential: OAuthCredential | BasicCredential | None = None,
        save_error: Exception | None = None,
    ):
        self.credential = credential
        self.save_error = save_error
        self.saved: list[OAuthCredential | BasicCredential] = []

    def load(self) -> OAuthCredential | BasicCredential:
        if self.credential is None:
            raise CredentialNotFoundError("nothing stored")
        return self.credential

    def save(self, credential: OAuthCredential | BasicCredential) -> None:
        if self.save_error is not None:
            raise self.save_error
        self.saved.append(credential)
        self.credential = credential

    def clear(self) -> None:
        self.credential = None


class MockTokenRefresher:
    """Refresher returning a canned credential or raising a canned error."""

    def __init__(self, result: OAuthCredential | None = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    def refresh(self, client_id: str, client_secret: str, refresh_token: str) -> OAuthCredential:
        self.calls.append((client_id, client_secret, refresh_token))
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


class TrickleStream(httpx.SyncByteStream):
    """Response body sent one byte at a time, pausing before each byte."""

    def __init__(self, body: bytes, delay: float):
        self.body = body
        self.delay = delay

    def __iter__(self) -> Iterator[bytes]:
        for i in range(len(self.body)):
            time.sleep(self.delay)
            yield self.body[i : i + 1]


@pytest.fixture
def oauth_credential():
    return OAuthCredential(access_token="A1", refresh_token="R1", scopes="repository pullrequest")


@pytest.fixture
def basic_credential():
    return BasicCredential(username="bob", access_token="pw")


@pytest.fixture
def cli_config():
    return CLIConfig(oauth_key="consumer-key", oauth_secret="consumer-secret")
