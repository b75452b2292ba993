"""
File-backed credential and configuration storage.

Both files live in the config directory (see `BitbucketSettings.config_dir`)
and are written owner-only, through a temporary file renamed into place so a
reader never sees a partial document.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ValidationError

from bbcli.shared.auth import BasicCredential, OAuthAppCredentials, OAuthCredential, parse_credential
from bbcli.shared.exceptions import CredentialNotFoundError, CredentialStoreError

logger = logging.getLogger(__name__)

TOKEN_FILENAME = "token.json"
CONFIG_FILENAME = "config.json"
DEFAULT_FORMAT = "table"
FORMATS = ("table", "json")


def _write_private(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileCredentialStore:
    """Stores the active credential as a small JSON document."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def in_dir(cls, config_dir: Path) -> "FileCredentialStore":
        return cls(config_dir / TOKEN_FILENAME)

    def load(self) -> OAuthCredential | BasicCredential:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise CredentialNotFoundError(f"No credential stored at {self.path}") from e
        except OSError as e:
            raise CredentialStoreError(f"Failed to read {self.path}: {e}") from e

        try:
            return parse_credential(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise CredentialStoreError(f"Stored credential at {self.path} is invalid: {e}") from e

    def save(self, credential: OAuthCredential | BasicCredential) -> None:
        try:
            _write_private(self.path, credential.model_dump_json(indent=2))
        except OSError as e:
            raise CredentialStoreError(f"Failed to write {self.path}: {e}") from e
        logger.debug(f"Saved {credential.auth_method} credential to {self.path}")

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise CredentialStoreError(f"Failed to remove {self.path}: {e}") from e


class CLIConfig(BaseModel):
    """User configuration, including the OAuth consumer used for refresh."""

    default_workspace: str = ""
    default_format: str = DEFAULT_FORMAT
    oauth_key: str = ""
    oauth_secret: str = ""

    def app_credentials(self) -> OAuthAppCredentials | None:
        if not self.oauth_key or not self.oauth_secret:
            return None
        return OAuthAppCredentials(client_id=self.oauth_key, client_secret=self.oauth_secret)


class ConfigStore:
    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def in_dir(cls, config_dir: Path) -> "ConfigStore":
        return cls(config_dir / CONFIG_FILENAME)

    def load(self) -> CLIConfig:
        """Load the config; a missing file yields the defaults."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return CLIConfig()
        except OSError as e:
            raise CredentialStoreError(f"Failed to read {self.path}: {e}") from e

        try:
            config = CLIConfig.model_validate_json(raw)
        except ValidationError as e:
            raise CredentialStoreError(f"Config at {self.path} is invalid: {e}") from e
        if not config.default_format:
            config.default_format = DEFAULT_FORMAT
        return config

    def save(self, config: CLIConfig) -> None:
        try:
            _write_private(self.path, config.model_dump_json(indent=2))
        except OSError as e:
            raise CredentialStoreError(f"Failed to write {self.path}: {e}") from e
