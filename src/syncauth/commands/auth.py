"""Auth commands -- obtain, inspect, verify and remove the refresh token.

Provides the ``syncauth auth`` sub-command group. ``login`` runs one
:class:`~syncauth.auth.session.AuthorizationSession` through an
:class:`~syncauth.auth.manager.Authorizer` and reports its single settled
outcome; the process exit code is derived from the outcome's error kind.

Typical workflow::

    syncauth auth setup     # how to register the OAuth client
    syncauth auth login     # browser consent, stores the refresh token
    syncauth auth test      # verify the stored refresh token
"""

from __future__ import annotations

import asyncio
import webbrowser
from typing import TYPE_CHECKING, Optional

import typer

from syncauth.output import (
    error,
    format_response,
    get_output,
    info,
    progress,
    success,
    suggest,
)

if TYPE_CHECKING:
    from syncauth.models import ClientSettings, SettledOutcome


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="OAuth client ID (overrides config and env)."
    ),
    client_secret: Optional[str] = typer.Option(
        None, "--client-secret", help="OAuth client secret (overrides config and env)."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Loopback port registered in the redirect URI."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening a browser."
    ),
) -> None:
    """Authorize access and store the refresh token.

    Binds the loopback listener, opens the provider's consent page and
    waits for the redirect. On success the refresh token is written to
    the credential store.

    Raises:
        typer.Exit: With the exit code mapped from the failure kind
            (4 port in use, 5 network, 6 timeout, 3 provider errors).

    Example::

        syncauth auth login
        syncauth auth login --client-id 1234.apps.googleusercontent.com --no-browser
    """
    from syncauth.config import resolve_client_settings
    from syncauth.exceptions import SyncauthError, exit_code_for

    no_input = ctx.obj.get("no_input", False) if ctx.obj else False
    try:
        settings = resolve_client_settings(
            client_id, client_secret, port, allow_prompt=not no_input
        )
    except SyncauthError as exc:
        error(str(exc))
        suggest("Registration steps: syncauth auth setup")
        raise typer.Exit(code=exc.exit_code) from None

    outcome = asyncio.run(_run_login(settings, open_browser=not no_browser))

    if outcome.success:
        success("Authorized successfully!")
        suggest("Verify it: syncauth auth test")
        return

    error(f"Authorization failed: {outcome.error_message}")
    raise typer.Exit(code=exit_code_for(outcome.error_kind))


async def _run_login(settings: ClientSettings, open_browser: bool) -> SettledOutcome:
    """Run one session to completion, always releasing it on the way out."""
    from syncauth.auth import Authorizer, CredentialStore

    store = CredentialStore(client_id=settings.client_id, scope=settings.provider.scope)

    def _open(url: str) -> Optional[bool]:
        if not open_browser:
            return None
        return webbrowser.open(url)

    authorizer = Authorizer.from_config(settings.provider, save=store.save, open_external=_open)
    try:
        session = await authorizer.authorize(
            settings.client_id, settings.client_secret, settings.port
        )
        if not session.state.is_terminal:
            if open_browser:
                info("Opening the authorization page in your browser.")
                info("If it does not open, visit this URL:")
            else:
                info("Open this URL in your browser to authorize:")
            info(session.authorization_url or "")
            progress(
                f"Waiting up to {session.timeout:g}s for the redirect to {session.redirect_uri} ..."
            )
        return await session.wait()
    finally:
        authorizer.shutdown()


@auth_app.command("status")
def auth_status() -> None:
    """Show whether a refresh token is stored.

    Example::

        syncauth auth status
        syncauth --json auth status
    """
    from syncauth.auth import CredentialStore

    store = CredentialStore()
    entry = store.load()
    if entry is None:
        format_response({"status": "Not authorized"})
        suggest("Authorize: syncauth auth login")
        return

    format_response(
        {
            "status": "Authorized",
            "client_id": entry.client_id or "-",
            "scope": entry.scope or "-",
            "obtained_at": entry.obtained_at.isoformat(),
            "path": str(store.path),
        }
    )


@auth_app.command("test")
def auth_test(ctx: typer.Context) -> None:
    """Exchange the stored refresh token for an access token once.

    Raises:
        typer.Exit: With code 3 if no token is stored or the provider
            rejects it, 5 on network failure.

    Example::

        syncauth auth test
    """
    from syncauth.auth import CredentialStore, TokenExchanger
    from syncauth.config import resolve_client_settings
    from syncauth.exceptions import SyncauthError
    from syncauth.exit_codes import EXIT_AUTH_FAILURE

    entry = CredentialStore().load()
    if entry is None:
        error("No refresh token stored.")
        suggest("Authorize: syncauth auth login")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)

    no_input = ctx.obj.get("no_input", False) if ctx.obj else False
    try:
        settings = resolve_client_settings(
            cli_client_id=entry.client_id, allow_prompt=not no_input
        )
        exchanger = TokenExchanger(
            settings.provider.token_url, timeout=settings.provider.request_timeout
        )
        progress("Contacting the token endpoint ...")
        token = asyncio.run(
            exchanger.refresh(settings.client_id, settings.client_secret, entry.refresh_token)
        )
    except SyncauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if token.expires_in is not None:
        success(f"Refresh token is valid (access token expires in {token.expires_in}s).")
    else:
        success("Refresh token is valid.")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Delete the stored refresh token.

    Asks for confirmation unless ``--force`` is active; with ``--no-input``
    and no ``--force`` nothing is deleted. The grant itself stays valid at
    the provider until revoked there.

    Example::

        syncauth auth logout
        syncauth --force auth logout
    """
    from syncauth.auth import CredentialStore

    store = CredentialStore()
    if store.load() is None:
        info("No refresh token stored.")
        return

    obj = ctx.obj or {}
    if not obj.get("force", False):
        no_input = obj.get("no_input", False)
        confirmed = not no_input and typer.confirm("Delete the stored refresh token?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    store.clear()
    success("Refresh token deleted.")
    suggest("Revoke the grant too: https://myaccount.google.com/permissions")


@auth_app.command("setup")
def auth_setup() -> None:
    """Explain how to register the OAuth client.

    The redirect URI shown is derived from the configured port and must be
    registered exactly as printed.
    """
    from syncauth.auth import redirect_uri_for
    from syncauth.config import load_global_config

    port = load_global_config().provider.port
    output = get_output()
    steps = [
        "Go to Google Cloud Console > APIs & Services > Credentials",
        "Create OAuth2 Client ID (Desktop app type)",
        f"Add {redirect_uri_for(port)} as authorized redirect URI",
        "Store the Client ID and Secret: "
        "syncauth config set provider.client_id <id>, "
        "syncauth config set provider.client_secret_source env:SYNCAUTH_CLIENT_SECRET",
        "Run: syncauth auth login",
    ]
    output.print_table(
        ["Step", "Action"],
        [[str(i), step] for i, step in enumerate(steps, 1)],
        title="Credentials Setup",
    )
