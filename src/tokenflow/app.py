"""Typer application and CLI entry point for tokenflow.

Commands:

* ``tokenflow token PROFILE`` -- print a valid access token to stdout.
* ``tokenflow purge PROFILE`` -- drop stored tokens.
* ``tokenflow discover URL`` -- show the endpoints of a discovery document.
* ``tokenflow profile list|show|import|delete`` -- manage saved flow
  configurations.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. :class:`~tokenflow.exceptions.TokenflowError` is
reported on stderr and mapped to its ``exit_code``.

See Also:
    :mod:`tokenflow.config`: Profile storage and settings.
    :mod:`tokenflow.output`: Output and logging initialised in :func:`main_callback`.
"""

from __future__ import annotations

import contextlib
import json
import sys
from pathlib import Path
from typing import Iterator, Optional

import typer

from tokenflow import __version__
from tokenflow.exceptions import ConfigurationError, TokenflowError
from tokenflow.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE
from tokenflow.output import configure_logging, error, get_output, success

app = typer.Typer(
    name="tokenflow",
    help="Obtain, cache, and refresh OAuth 2.0 access tokens.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

profile_app = typer.Typer(no_args_is_help=True)
app.add_typer(profile_app, name="profile", help="Manage saved flow configurations.")

_SECRET_MASK = "********"


@contextlib.contextmanager
def _handle_errors() -> Iterator[None]:
    """Report :class:`TokenflowError` on stderr and exit with its code."""
    try:
        yield
    except TokenflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"tokenflow {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~tokenflow.output.OutputManager` and the
    Rich log handler from the CLI flags.
    """
    from tokenflow.output import OutputManager, set_output

    set_output(OutputManager(no_color=no_color, quiet=quiet, json_output=json_output))
    configure_logging(verbose=verbose, no_color=no_color)


@app.command("token")
def token_command(
    profile: str = typer.Argument(help="Profile name."),
    min_validity: Optional[int] = typer.Option(
        None, "--min-validity", min=0, help="Seconds a cached token must remain valid."
    ),
    proxy: Optional[str] = typer.Option(None, "--proxy", help="HTTP proxy URL (scheme://host:port)."),
) -> None:
    """Print a valid access token for PROFILE.

    Uses the cached token when it is still valid, refreshes it when
    possible, and otherwise runs the profile's flow.

    Example::

        curl -H "Authorization: Bearer $(tokenflow token my-api)" https://api.example.com/
    """
    from tokenflow.client import OAuth2Client
    from tokenflow.config import load_profile

    with _handle_errors():
        config = load_profile(profile)
        with OAuth2Client(
            config, valid_min_duration_threshold=min_validity, proxy_url=proxy
        ) as client:
            access_token = client.token()
    get_output().print_data(access_token)


@app.command("purge")
def purge_command(
    profile: str = typer.Argument(help="Profile name."),
    all_flows: bool = typer.Option(
        False, "--all", help="Purge tokens of every flow kind for the profile's client."
    ),
) -> None:
    """Remove stored tokens for PROFILE."""
    from tokenflow.client import OAuth2Client
    from tokenflow.config import load_profile

    with _handle_errors():
        config = load_profile(profile)
        with OAuth2Client(config) as client:
            client.purge_tokens(all_flows=all_flows)
    success(f"Purged tokens for profile '{profile}'")


@app.command("discover")
def discover_command(
    url: str = typer.Argument(help="OIDC discovery document URL."),
) -> None:
    """Show the OAuth endpoints advertised by a discovery document."""
    from tokenflow.auth.endpoints import fetch_discovery_document
    from tokenflow.config import load_settings
    from tokenflow.transport import HttpTransport

    fields = ["token_endpoint", "authorization_endpoint", "device_authorization_endpoint", "jwks_uri"]
    with _handle_errors():
        settings = load_settings()
        with HttpTransport(timeout=settings.timeout, proxy_url=settings.proxy_url) as http:
            document = fetch_discovery_document(url, http)
    rows = [[field, str(document.get(field) or "-")] for field in fields]
    get_output().print_table(["Endpoint", "URL"], rows, title=url)


# ------------------------------------------------------------------ #
# Profiles
# ------------------------------------------------------------------ #


@profile_app.command("list")
def profile_list() -> None:
    """List saved profiles and their flow kinds."""
    from tokenflow.config import list_profiles, load_profile

    rows: list[list[str]] = []
    for name in list_profiles():
        try:
            config = load_profile(name)
            rows.append([name, config.kind, config.client_id or ""])
        except ConfigurationError as exc:
            rows.append([name, "invalid", str(exc)])
    get_output().print_table(["Profile", "Flow", "Client ID"], rows, title="Profiles")


@profile_app.command("show")
def profile_show(
    name: str = typer.Argument(help="Profile name."),
    reveal: bool = typer.Option(False, "--reveal", help="Show the client secret."),
) -> None:
    """Print a profile's configuration as JSON."""
    from tokenflow.config import load_profile

    with _handle_errors():
        config = load_profile(name)
    data = config.model_dump(mode="json", exclude_none=True)
    if data.get("client_secret") and not reveal:
        data["client_secret"] = _SECRET_MASK
    get_output().print_json(data)


@profile_app.command("import")
def profile_import(
    name: str = typer.Argument(help="Profile name to create or replace."),
    path: Path = typer.Argument(help="JSON file with the flow configuration."),
) -> None:
    """Validate a JSON flow configuration and save it as a profile."""
    from tokenflow.config import save_profile
    from tokenflow.models import parse_flow_config

    with _handle_errors():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a JSON object")
        config = parse_flow_config(data)
        saved = save_profile(name, config)
    success(f"Saved profile '{name}' ({config.kind}) to {saved}")


@profile_app.command("delete")
def profile_delete(
    name: str = typer.Argument(help="Profile name."),
) -> None:
    """Delete a saved profile. Stored tokens are left in place."""
    from tokenflow.config import delete_profile

    with _handle_errors():
        delete_profile(name)
    success(f"Deleted profile '{name}'")


def main() -> None:
    """CLI entry point invoked by the ``tokenflow`` console script.

    Unhandled :class:`~tokenflow.exceptions.TokenflowError` instances
    cause a clean exit with the error's ``exit_code``; Ctrl-C exits with
    130.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except TokenflowError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:  # noqa: BLE001
        error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
