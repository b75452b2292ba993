"""
Process-wide settings, read from `BB_*` environment variables.
"""

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "bitbucket-cli"
DEFAULT_API_URL = "https://api.bitbucket.org/2.0"
DEFAULT_HTTP_TIMEOUT = 30


def default_config_dir() -> Path:
    return Path.home() / ".config" / APP_NAME


class BitbucketSettings(BaseSettings):
    """Endpoints, config location and request timeout."""

    model_config = SettingsConfigDict(env_prefix="BB_")

    api_url: str = DEFAULT_API_URL
    authorize_url: str = "https://bitbucket.org/site/oauth2/authorize"
    token_url: str = "https://bitbucket.org/site/oauth2/access_token"
    config_dir: Path = Field(default_factory=default_config_dir)

    # seconds; bounds each request/response exchange as a whole, body included
    http_timeout: int = DEFAULT_HTTP_TIMEOUT

    @field_validator("http_timeout", mode="before")
    @classmethod
    def _fallback_timeout(cls, value: Any) -> int:
        # a bad BB_HTTP_TIMEOUT is ignored rather than failing every command
        try:
            seconds = int(value)
        except (TypeError, ValueError):
            return DEFAULT_HTTP_TIMEOUT
        return seconds if seconds > 0 else DEFAULT_HTTP_TIMEOUT
