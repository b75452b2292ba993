import pytest
from pydantic import ValidationError

from bbcli.shared.auth import BasicCredential, OAuthCredential, OAuthToken, parse_credential


class TestParseCredential:
    def test_tag_selects_variant(self):
        assert isinstance(parse_credential({"auth_method": "oauth", "access_token": "A1"}), OAuthCredential)
        basic = parse_credential({"auth_method": "token", "username": "bob", "access_token": "pw"})
        assert basic == BasicCredential(username="bob", access_token="pw")

    def test_missing_tag_defaults_to_oauth(self):
        for data in ({"access_token": "A1"}, {"auth_method": "", "access_token": "A1"}):
            assert isinstance(parse_credential(data), OAuthCredential)

    def test_basic_requires_username(self):
        with pytest.raises(ValidationError):
            parse_credential({"auth_method": "token", "access_token": "pw"})


class TestOAuthToken:
    def test_to_credential(self):
        token = OAuthToken.model_validate(
            {"access_token": "A2", "refresh_token": "R2", "token_type": "bearer", "expires_in": 7200, "scopes": "issue"}
        )
        assert token.to_credential() == OAuthCredential(
            access_token="A2", refresh_token="R2", expires_in=7200, scopes="issue"
        )

    def test_refresh_token_is_optional(self):
        assert OAuthToken(access_token="A2").to_credential().refresh_token is None

    def test_access_token_required(self):
        with pytest.raises(ValidationError):
            OAuthToken.model_validate({"token_type": "bearer"})
        with pytest.raises(ValidationError):
            OAuthToken(access_token="")
