from bbcli.client.api import BitbucketClient
from bbcli.client.auth import BitbucketAuth, OAuthTokenRefresher
from bbcli.shared.auth import BasicCredential, OAuthAppCredentials, OAuthCredential
from bbcli.shared.exceptions import (
    APIError,
    AuthConfigurationError,
    BitbucketError,
    SessionExpiredError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    "APIError",
    "AuthConfigurationError",
    "BasicCredential",
    "BitbucketAuth",
    "BitbucketClient",
    "BitbucketError",
    "OAuthAppCredentials",
    "OAuthCredential",
    "OAuthTokenRefresher",
    "SessionExpiredError",
    "TransportError",
]
