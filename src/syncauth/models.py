"""Canonical Pydantic models shared across all syncauth modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ProviderConfig`, :class:`OutputConfig` and :class:`GlobalConfig`,
    plus the resolved, in-memory :class:`ClientSettings`.

**Authorization models** -- produced and consumed by :mod:`syncauth.auth`:
    :class:`PKCEPair`, :class:`CallbackResult`, :class:`TokenResponse`,
    :class:`SessionState`, :class:`ErrorKind`, :class:`SettledOutcome` and
    :class:`StoredCredential`.

All models use Pydantic v2. :class:`TokenResponse` uses ``extra="allow"`` so
that provider-specific fields (``id_token``, ``scope``, ...) are preserved in
``model_extra``.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_FILE_SCOPE = "https://www.googleapis.com/auth/drive.file"
DEFAULT_PORT = 39587
DEFAULT_TIMEOUT_SECONDS = 120


# --- Configuration ---


class ProviderConfig(BaseModel):
    """OAuth client registration and endpoints for the storage provider.

    ``port`` must match the redirect URI registered with the provider
    byte for byte (``http://127.0.0.1:<port>``), so it is fixed rather than
    picked at random.

    Example::

        ProviderConfig(
            client_id="1234.apps.googleusercontent.com",
            client_secret_source="env:GDRIVE_CLIENT_SECRET",
        )
    """

    client_id: Optional[str] = Field(default=None, description="OAuth client ID")
    client_secret_source: Optional[str] = Field(
        default=None,
        description="Client secret source: env:VAR, file:/path, prompt",
    )
    port: int = Field(
        default=DEFAULT_PORT,
        ge=1024,
        le=65535,
        description="Loopback port registered in the redirect URI",
    )
    scope: str = Field(default=DRIVE_FILE_SCOPE, description="Requested OAuth scope")
    authorization_url: str = Field(default=GOOGLE_AUTH_URL)
    token_url: str = Field(default=GOOGLE_TOKEN_URL)
    timeout_seconds: int = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        ge=1,
        le=3600,
        description="Seconds to wait for the browser redirect",
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Token endpoint request timeout in seconds"
    )


class OutputConfig(BaseModel):
    """Output format preferences."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto",
        description="Default data format when neither --json nor --plain is given",
    )


class GlobalConfig(BaseModel):
    """Top-level configuration persisted as ``config.json``.

    Loaded by :func:`~syncauth.config.load_global_config` and saved by
    :func:`~syncauth.config.save_global_config`. Every field has a default,
    so a missing file is equivalent to ``GlobalConfig()``.
    """

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


class ClientSettings(BaseModel):
    """Fully resolved inputs for one authorization attempt.

    Produced by :func:`~syncauth.config.resolve_client_settings` after
    applying CLI, environment and config-file precedence. Never persisted.
    """

    client_id: str
    client_secret: str
    port: int
    provider: ProviderConfig


# --- Authorization ---


class PKCEPair(BaseModel):
    """A PKCE code verifier and its S256 challenge."""

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str


class CallbackResult(BaseModel):
    """What the provider's redirect carried.

    At most one of ``code`` and ``error`` is set. Both are ``None`` when the
    request was malformed or carried neither parameter.
    """

    code: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.code is None and self.error is None


class TokenResponse(BaseModel):
    """Parsed JSON body of a token endpoint response."""

    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None


class SessionState(str, enum.Enum):
    """States of an :class:`~syncauth.auth.session.AuthorizationSession`.

    ``AUTHORIZED``, ``FAILED`` and ``TIMED_OUT`` are terminal.
    """

    IDLE = "Idle"
    LISTENER_STARTED = "ListenerStarted"
    AWAITING_CALLBACK = "AwaitingCallback"
    EXCHANGING_CODE = "ExchangingCode"
    AUTHORIZED = "Authorized"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {SessionState.AUTHORIZED, SessionState.FAILED, SessionState.TIMED_OUT}
)


class ErrorKind(str, enum.Enum):
    """Why a session did not end ``Authorized``."""

    PORT_IN_USE = "PortInUse"
    PROVIDER_ERROR = "ProviderError"
    NETWORK_FAILURE = "NetworkFailure"
    MISSING_REFRESH_TOKEN = "MissingRefreshToken"
    TIMEOUT = "Timeout"
    BROWSER_LAUNCH_FAILED = "BrowserLaunchFailed"
    STORAGE_FAILURE = "StorageFailure"
    CANCELLED = "Cancelled"


class SettledOutcome(BaseModel):
    """The single notification a session delivers when it reaches a terminal state.

    Carries plain values only, so subscribers (a CLI, a preferences window)
    never hand UI objects to the core.

    Example::

        SettledOutcome(success=True, refresh_token="1//0g...")
        SettledOutcome(success=False, error_kind=ErrorKind.TIMEOUT,
                       error_message="Authorization timed out")
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    refresh_token: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None


class StoredCredential(BaseModel):
    """A refresh token persisted by :class:`~syncauth.auth.credential_store.CredentialStore`."""

    refresh_token: str = Field(description="Long-lived provider refresh token")
    client_id: Optional[str] = Field(
        default=None, description="Client ID the token was issued to"
    )
    scope: Optional[str] = Field(default=None, description="Scope granted at consent")
    obtained_at: datetime = Field(description="UTC time the token was stored")
