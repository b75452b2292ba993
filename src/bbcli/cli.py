"""
bb - command-line client for Bitbucket Cloud.
"""

import json
import logging
import sys
import webbrowser
from typing import Any
from urllib.parse import quote

import click

from bbcli.client.api import JSON_CONTENT_TYPE, BitbucketClient, handle_response
from bbcli.client.auth import OAuthTokenRefresher
from bbcli.client.login import login as browser_login
from bbcli.client.pagination import iter_pages
from bbcli.client.storage import FORMATS, CLIConfig, ConfigStore, FileCredentialStore
from bbcli.settings import BitbucketSettings
from bbcli.shared.auth import BasicCredential
from bbcli.shared.exceptions import BitbucketError, CredentialNotFoundError

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated. Run 'bb auth login' to log in."


def _fail(e: BitbucketError) -> click.ClickException:
    logger.debug("command failed", exc_info=e)
    return click.ClickException(str(e))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log HTTP attempts and token refreshes")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """bb is a CLI tool for interacting with Bitbucket Cloud."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    if ctx.obj is None:
        ctx.obj = BitbucketSettings()


@main.group()
def auth() -> None:
    """Authenticate with Bitbucket."""


@auth.command()
@click.option("--key", prompt="Enter OAuth consumer key", help="OAuth consumer key")
@click.option("--secret", prompt="Enter OAuth consumer secret", hide_input=True, help="OAuth consumer secret")
@click.pass_obj
def setup(settings: BitbucketSettings, key: str, secret: str) -> None:
    """
    Configure the OAuth consumer key and secret.

    Create the consumer under Bitbucket Settings > OAuth consumers, with
    http://localhost as callback URL.
    """
    key, secret = key.strip(), secret.strip()
    if not key or not secret:
        raise click.ClickException("both key and secret are required")

    store = ConfigStore.in_dir(settings.config_dir)
    try:
        config = store.load()
        config.oauth_key = key
        config.oauth_secret = secret
        store.save(config)
    except BitbucketError as e:
        raise _fail(e) from e
    click.echo("OAuth credentials saved successfully.")


def _open_browser(url: str) -> None:
    if webbrowser.open(url):
        click.echo("Opened browser for authentication.")
        click.echo("If it didn't open, visit:")
    else:
        click.echo("Open this URL in your browser to authenticate:")
    click.echo()
    click.echo(f"  {url}")
    click.echo()
    click.echo("Waiting for authorization...")


@auth.command("login")
@click.option("--with-token", is_flag=True, help="Read an app password or API token from stdin")
@click.option("--username", help="Bitbucket username for --with-token")
@click.pass_obj
def login_command(settings: BitbucketSettings, with_token: bool, username: str | None) -> None:
    """Log in to Bitbucket via OAuth 2.0, or store an app password."""
    credentials = FileCredentialStore.in_dir(settings.config_dir)

    try:
        if with_token:
            if not username:
                raise click.UsageError("--username is required with --with-token")
            secret = sys.stdin.read().strip()
            if not secret:
                raise click.ClickException("no token provided on stdin")
            credentials.save(BasicCredential(username=username, access_token=secret))
        else:
            app_credentials = ConfigStore.in_dir(settings.config_dir).load().app_credentials()
            if app_credentials is None:
                raise click.ClickException("OAuth credentials not configured. Run 'bb auth setup' first")
            refresher = OAuthTokenRefresher(settings.token_url, timeout=settings.http_timeout)
            credential = browser_login(
                app_credentials,
                refresher,
                settings.authorize_url,
                on_auth=_open_browser,
            )
            credentials.save(credential)
    except BitbucketError as e:
        raise click.ClickException(f"login failed: {e}") from e

    click.echo("Successfully authenticated with Bitbucket!")


@auth.command()
@click.pass_obj
def logout(settings: BitbucketSettings) -> None:
    """Log out and remove stored credentials."""
    try:
        FileCredentialStore.in_dir(settings.config_dir).clear()
    except BitbucketError as e:
        raise _fail(e) from e
    click.echo("Logged out successfully.")


@auth.command()
@click.pass_obj
def status(settings: BitbucketSettings) -> None:
    """Show current authentication status."""
    try:
        credential = FileCredentialStore.in_dir(settings.config_dir).load()
    except CredentialNotFoundError:
        click.echo(NOT_AUTHENTICATED)
        return
    except BitbucketError as e:
        raise _fail(e) from e

    if not credential.access_token:
        click.echo(NOT_AUTHENTICATED)
        return

    if isinstance(credential, BasicCredential):
        click.echo(f"Authenticated with Bitbucket as {credential.username} (app password).")
    else:
        click.echo("Authenticated with Bitbucket (OAuth).")
        if credential.scopes:
            click.echo(f"Scopes: {credential.scopes}")


def _mask(value: str) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 4:
        return "****"
    return value[:4] + "****"


@main.group()
def config() -> None:
    """Manage CLI configuration."""


def _update_config(settings: BitbucketSettings, **changes: str) -> None:
    store = ConfigStore.in_dir(settings.config_dir)
    try:
        current = store.load()
        store.save(current.model_copy(update=changes))
    except BitbucketError as e:
        raise _fail(e) from e


@config.command()
@click.pass_obj
def view(settings: BitbucketSettings) -> None:
    """Show current configuration."""
    try:
        cfg = ConfigStore.in_dir(settings.config_dir).load()
    except BitbucketError as e:
        raise _fail(e) from e

    click.echo(f"Default Workspace: {cfg.default_workspace or '(not set)'}")
    click.echo(f"Default Format:    {cfg.default_format}")
    click.echo(f"OAuth Key:         {_mask(cfg.oauth_key)}")

    try:
        credential = FileCredentialStore.in_dir(settings.config_dir).load()
    except CredentialNotFoundError:
        credential = None
    except BitbucketError as e:
        raise _fail(e) from e
    if credential is None or not credential.access_token:
        click.echo("Auth Method:       (not authenticated)")
    elif isinstance(credential, BasicCredential):
        click.echo(f"Auth Method:       App Password (user: {credential.username})")
    else:
        click.echo("Auth Method:       OAuth 2.0")
    click.echo(f"Config Directory:  {settings.config_dir}")


@config.command("set-default-workspace")
@click.argument("workspace")
@click.pass_obj
def set_default_workspace(settings: BitbucketSettings, workspace: str) -> None:
    """Set the workspace substituted for {workspace} in API paths."""
    _update_config(settings, default_workspace=workspace)
    click.echo(f"Default workspace set to '{workspace}'.")


@config.command("set-format")
@click.argument("output_format", metavar="FORMAT", type=click.Choice(FORMATS))
@click.pass_obj
def set_format(settings: BitbucketSettings, output_format: str) -> None:
    """Set the default output format."""
    _update_config(settings, default_format=output_format)
    click.echo(f"Default output format set to '{output_format}'.")


def expand_path(path: str, cfg: CLIConfig) -> str:
    """Replace {workspace} in an API path with the configured default workspace."""
    if "{workspace}" not in path:
        return path
    if not cfg.default_workspace:
        raise click.UsageError(
            "PATH uses {workspace} but no default workspace is set; run 'bb config set-default-workspace'"
        )
    return path.replace("{workspace}", quote(cfg.default_workspace, safe=""))


def _print_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


@main.command()
@click.argument("path")
@click.option("-X", "--method", default="GET", show_default=True, help="HTTP method")
@click.option("--data", "body", help="JSON request body")
@click.option("--paginate", is_flag=True, help="Follow `next` links and print every value")
@click.pass_obj
def api(settings: BitbucketSettings, path: str, method: str, body: str | None, paginate: bool) -> None:
    """
    Make an authenticated request to the Bitbucket API.

    PATH is relative to the API base URL, e.g. /user or /repositories/{workspace},
    where {workspace} is replaced with the default workspace.
    """
    method = method.upper()
    try:
        with BitbucketClient.from_config(settings) as client:
            path = expand_path(path, client.config)
            if paginate:
                _print_json(list(iter_pages(client, path)))
                return

            response = client.execute(method, path, body, JSON_CONTENT_TYPE if body is not None else None)
            if response.status_code == 204:
                return
            content = handle_response(response)
    except BitbucketError as e:
        raise _fail(e) from e

    if not content:
        return
    try:
        _print_json(json.loads(content))
    except ValueError:
        click.echo(content.decode("utf-8", errors="replace"))
