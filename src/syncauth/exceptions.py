"""Exception hierarchy for syncauth.

All exceptions inherit from :class:`SyncauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`syncauth.exit_codes`.
The top-level error handler in :func:`syncauth.app.main` catches
``SyncauthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Failures of an authorization attempt derive from :class:`AuthorizationError`
and additionally carry an :class:`~syncauth.models.ErrorKind`. The session
state machine turns them into a :class:`~syncauth.models.SettledOutcome`
instead of letting them escape.

Subclass hierarchy::

    SyncauthError (exit 1)
    +-- InvalidUsageError            (exit 2)
    +-- ConfigError                  (exit 1)
    +-- AuthorizationError           (exit 3)
        +-- PortInUseError           (exit 4)
        +-- ProviderError            (exit 3)
        +-- NetworkError             (exit 5)
        +-- MissingRefreshTokenError (exit 3)
        +-- AuthorizationTimeout     (exit 6)
        +-- BrowserLaunchError       (exit 3)
        +-- CredentialStoreError     (exit 1)
        +-- AuthorizationCancelled   (exit 130)
"""

from __future__ import annotations

from syncauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PORT_IN_USE,
    EXIT_TIMEOUT,
)
from syncauth.models import ErrorKind


class SyncauthError(Exception):
    """Base exception for all syncauth errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(SyncauthError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(SyncauthError):
    """Raised for configuration problems (missing client ID, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthorizationError(SyncauthError):
    """Base class for failures that end an authorization session.

    Attributes:
        kind: The :class:`~syncauth.models.ErrorKind` reported to subscribers.
    """

    exit_code = EXIT_AUTH_FAILURE
    kind: ErrorKind = ErrorKind.PROVIDER_ERROR


class PortInUseError(AuthorizationError):
    """Raised when the loopback listener cannot bind its fixed port."""

    exit_code = EXIT_PORT_IN_USE
    kind = ErrorKind.PORT_IN_USE

    def __init__(self, port: int, reason: str = "address already in use"):
        self.port = port
        super().__init__(
            f"Cannot listen on 127.0.0.1:{port} ({reason}). "
            "Close the application using this port and try again."
        )


class ProviderError(AuthorizationError):
    """Raised when the provider explicitly reports an error.

    Either through an ``error`` query parameter on the redirect or an error
    status from the token endpoint. The provider's message is kept verbatim.
    """

    kind = ErrorKind.PROVIDER_ERROR


class NetworkError(AuthorizationError):
    """Raised on transport failures talking to the token endpoint (timeout, DNS, refused)."""

    exit_code = EXIT_CONNECTION_ERROR
    kind = ErrorKind.NETWORK_FAILURE


class MissingRefreshTokenError(AuthorizationError):
    """Raised when the token response carries no ``refresh_token``.

    Usually the account already granted consent earlier and the provider
    only returns a refresh token on the first consent.
    """

    kind = ErrorKind.MISSING_REFRESH_TOKEN

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "No refresh token received. Revoke the app's access at "
            "https://myaccount.google.com/permissions and authorize again."
        )


class AuthorizationTimeout(AuthorizationError):
    """Raised when no callback completes the session within its time window."""

    exit_code = EXIT_TIMEOUT
    kind = ErrorKind.TIMEOUT


class BrowserLaunchError(AuthorizationError):
    """Raised when the external browser cannot be launched."""

    kind = ErrorKind.BROWSER_LAUNCH_FAILED


class CredentialStoreError(AuthorizationError):
    """Raised when the obtained refresh token cannot be persisted."""

    exit_code = EXIT_GENERIC_FAILURE
    kind = ErrorKind.STORAGE_FAILURE


class AuthorizationCancelled(AuthorizationError):
    """Raised when a session is torn down before it finished (Ctrl-C, re-authorize)."""

    exit_code = EXIT_CANCELLED
    kind = ErrorKind.CANCELLED


_ERRORS_BY_KIND: dict[ErrorKind, type[AuthorizationError]] = {
    cls.kind: cls
    for cls in (
        PortInUseError,
        ProviderError,
        NetworkError,
        MissingRefreshTokenError,
        AuthorizationTimeout,
        BrowserLaunchError,
        CredentialStoreError,
        AuthorizationCancelled,
    )
}


def exit_code_for(kind: ErrorKind | None) -> int:
    """Return the process exit code for a settled session's error kind."""
    if kind is None:
        return EXIT_GENERIC_FAILURE
    return _ERRORS_BY_KIND[kind].exit_code
