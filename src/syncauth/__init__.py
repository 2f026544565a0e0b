"""syncauth -- Authorize desktop configuration sync against Google Drive.

This package obtains a long-lived Google Drive refresh token for a desktop
application using the OAuth2 Authorization Code grant with PKCE and a
loopback redirect on ``127.0.0.1``. The refresh token is persisted in the
user's data directory, where the sync engine picks it up.

Typical workflow::

    syncauth config set provider.client_id <id>
    syncauth auth login --client-secret <secret>
    syncauth auth status

Modules:
    app: Typer application factory and CLI entry point.
    auth: PKCE, loopback listener, callback parsing, token exchange and the
        authorization session state machine.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and client settings resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
