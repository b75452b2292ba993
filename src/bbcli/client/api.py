"""
Client for the Bitbucket Cloud 2.0 REST API.
"""

import json
import logging
from typing import Any

import httpx

from bbcli.client.auth import BitbucketAuth, CredentialStore, OAuthTokenRefresher, TokenRefresher
from bbcli.client.deadline import deadline_hooks
from bbcli.client.storage import CLIConfig, ConfigStore, FileCredentialStore
from bbcli.settings import DEFAULT_API_URL, BitbucketSettings
from bbcli.shared.auth import BasicCredential, OAuthCredential
from bbcli.shared.exceptions import (
    APIError,
    CredentialNotFoundError,
    NotAuthenticatedError,
    ResponseDecodeError,
    TransportError,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def handle_response(response: httpx.Response) -> bytes:
    """Return the body of a successful response, raising APIError for status >= 400."""
    if response.status_code >= 400:
        raise APIError(response.status_code, response.text)
    return response.content


class BitbucketClient:
    """
    Issues authenticated requests against the API.

    Paths are resolved against `base_url`; absolute URLs (such as pagination
    `next` links) are used as given.
    """

    def __init__(
        self,
        credential: OAuthCredential | BasicCredential,
        store: CredentialStore,
        refresher: TokenRefresher,
        config: CLIConfig | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.config = config or CLIConfig()
        self.auth = BitbucketAuth(
            credential,
            store=store,
            refresher=refresher,
            app_credentials=self.config.app_credentials(),
        )
        # redirects are followed; httpx drops Authorization when the origin changes
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            event_hooks=deadline_hooks(timeout),
        )

    @classmethod
    def from_config(cls, settings: BitbucketSettings | None = None) -> "BitbucketClient":
        """Build a client from the stored credential and config."""
        settings = settings or BitbucketSettings()
        config = ConfigStore.in_dir(settings.config_dir).load()
        store = FileCredentialStore.in_dir(settings.config_dir)
        try:
            credential = store.load()
        except CredentialNotFoundError as e:
            raise NotAuthenticatedError("not authenticated. Run 'bb auth login' first") from e

        return cls(
            credential,
            store=store,
            refresher=OAuthTokenRefresher(settings.token_url, timeout=settings.http_timeout),
            config=config,
            base_url=settings.api_url,
            timeout=settings.http_timeout,
        )

    @property
    def credential(self) -> OAuthCredential | BasicCredential:
        return self.auth.credential

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "BitbucketClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def execute(
        self,
        method: str,
        url: str,
        body: bytes | str | None = None,
        content_type: str | None = None,
    ) -> httpx.Response:
        """
        Send one logical request and return the final response unclassified.

        Redirects are followed. Raises TransportError when the request could not
        be sent or an attempt outlived the time limit, and the auth errors of
        BitbucketAuth when an expired token cannot be refreshed.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        headers = {"Content-Type": content_type} if content_type else None

        logger.debug(f"{method} {url}")
        try:
            response = self._http.request(method, url, content=body, headers=headers, auth=self.auth)
        except httpx.TransportError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        logger.debug(f"{method} {url} -> HTTP {response.status_code}")
        return response

    def get(self, path: str) -> bytes:
        return handle_response(self.execute("GET", path))

    def get_raw(self, url: str) -> bytes:
        """GET an absolute URL, e.g. a pagination `next` link."""
        return handle_response(self.execute("GET", url))

    def get_json(self, path: str) -> Any:
        response = self.execute("GET", path)
        if response.status_code == 204:
            return None
        content = handle_response(response)
        try:
            return json.loads(content)
        except ValueError as e:
            raise ResponseDecodeError(f"GET {path} returned invalid JSON: {e}") from e

    def post(self, path: str, json_body: str) -> bytes:
        return handle_response(self.execute("POST", path, json_body, JSON_CONTENT_TYPE))

    def post_form(self, path: str, data: dict[str, str]) -> bytes:
        body = str(httpx.QueryParams(data))
        return handle_response(self.execute("POST", path, body, FORM_CONTENT_TYPE))

    def put(self, path: str, json_body: str) -> bytes:
        return handle_response(self.execute("PUT", path, json_body, JSON_CONTENT_TYPE))

    def delete(self, path: str) -> bytes | None:
        """DELETE a resource; 204 No Content yields None without reading the body."""
        response = self.execute("DELETE", path)
        if response.status_code == 204:
            return None
        return handle_response(response)
