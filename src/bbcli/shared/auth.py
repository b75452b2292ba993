from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

AuthMethod = Literal["oauth", "token"]


class OAuthToken(BaseModel):
    """
    Token endpoint response.
    See https://datatracker.ietf.org/doc/html/rfc6749#section-5.1

    Bitbucket reports granted scopes in a space separated `scopes` field
    rather than the RFC's `scope`.
    """

    access_token: str = Field(..., min_length=1)
    token_type: str = "bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scopes: str | None = None

    def to_credential(self) -> "OAuthCredential":
        """Convert the response into a stored credential."""
        return OAuthCredential(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            token_type=self.token_type,
            expires_in=self.expires_in,
            scopes=self.scopes,
        )


class OAuthCredential(BaseModel):
    """Access/refresh token pair obtained through an OAuth consumer."""

    auth_method: Literal["oauth"] = "oauth"
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    scopes: str | None = None

    def can_refresh(self) -> bool:
        return bool(self.refresh_token)


class BasicCredential(BaseModel):
    """Username plus app password (or API token), sent with HTTP Basic auth."""

    auth_method: Literal["token"] = "token"
    username: str
    # the secret lives in access_token so the stored document keeps one shape
    access_token: str


Credential = Annotated[
    Union[OAuthCredential, BasicCredential],
    Field(discriminator="auth_method"),
]

credential_adapter: TypeAdapter[OAuthCredential | BasicCredential] = TypeAdapter(Credential)


def parse_credential(data: Any) -> OAuthCredential | BasicCredential:
    """Validate a stored credential document; documents without a tag are OAuth."""
    if isinstance(data, dict) and not data.get("auth_method"):
        data = {**data, "auth_method": "oauth"}
    return credential_adapter.validate_python(data)


class OAuthAppCredentials(BaseModel):
    """OAuth consumer key/secret identifying this CLI to Bitbucket."""

    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
