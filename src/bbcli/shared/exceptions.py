class BitbucketError(Exception):
    """
    Base class for all errors raised by the Bitbucket client.
    """


class TransportError(BitbucketError):
    """Raised when a request could not be sent (connection, DNS, timeout)."""


class AuthConfigurationError(BitbucketError):
    """Raised when a token refresh is needed but no OAuth consumer is configured."""


class TokenRefreshError(BitbucketError):
    """Raised when the token endpoint rejects a grant or returns an unusable body."""


class SessionExpiredError(BitbucketError):
    """Raised when the access token expired and could not be refreshed."""


class NotAuthenticatedError(BitbucketError):
    """Raised when no stored credential is available."""


class CredentialNotFoundError(NotAuthenticatedError):
    """Raised by a credential store that holds no credential."""


class CredentialStoreError(BitbucketError):
    """Raised when a credential or config file cannot be read or written."""


class APIError(BitbucketError):
    """
    Raised for a final response with status >= 400.

    The raw body is kept as text; Bitbucket usually sends a JSON error
    document, but it is not parsed here.
    """

    def __init__(self, status_code: int, body: str):
        super().__init__(f"API error (HTTP {status_code}): {body}")
        self.status_code = status_code
        self.body = body


class ResponseDecodeError(BitbucketError):
    """Raised when a successful response body is not the expected JSON document."""


class LoginError(BitbucketError):
    """Raised when the browser authorization flow fails or times out."""
