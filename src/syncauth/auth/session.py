"""The authorization session state machine.

One :class:`AuthorizationSession` is one attempt to obtain a refresh token::

    Idle -> ListenerStarted -> AwaitingCallback -> ExchangingCode -> Authorized
    AwaitingCallback -> Failed            (provider error)
    ExchangingCode   -> Failed            (network, missing refresh token, storage)
    any live state   -> Failed | TimedOut (bind failure, cancel, timeout)

``Authorized``, ``Failed`` and ``TimedOut`` are terminal. Every transition
into a terminal state goes through :meth:`AuthorizationSession._settle`,
which checks that the session is still live before acting. The timeout, the
callback and an external :meth:`~AuthorizationSession.cancel` may race; the
first one to settle wins and the others become no-ops.

The session exclusively owns its listener handle, its timeout timer and its
in-flight exchange task, and releases all three synchronously when it
settles. Subscribers receive exactly one :class:`~syncauth.models.SettledOutcome`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

from syncauth.auth.callback import CallbackPage
from syncauth.auth.exchanger import TokenExchanger
from syncauth.auth.listener import LOOPBACK_HOST, ListenerHandle, LoopbackListener
from syncauth.auth.pkce import generate_pkce_pair
from syncauth.exceptions import (
    AuthorizationCancelled,
    AuthorizationError,
    AuthorizationTimeout,
    BrowserLaunchError,
    CredentialStoreError,
    NetworkError,
    PortInUseError,
    ProviderError,
)
from syncauth.models import (
    DEFAULT_TIMEOUT_SECONDS,
    DRIVE_FILE_SCOPE,
    GOOGLE_AUTH_URL,
    CallbackResult,
    PKCEPair,
    SessionState,
    SettledOutcome,
)

logger = logging.getLogger(__name__)

OpenExternal = Callable[[str], Optional[bool]]
SaveRefreshToken = Callable[[str], None]
OnSettled = Callable[[SettledOutcome], None]


def redirect_uri_for(port: int) -> str:
    """Return the loopback redirect URI for *port*, without a trailing slash.

    The same string is sent in the authorization request and in the token
    exchange; the provider compares them byte for byte.
    """
    return f"http://{LOOPBACK_HOST}:{port}"


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    scope: str = DRIVE_FILE_SCOPE,
    authorization_url: str = GOOGLE_AUTH_URL,
) -> str:
    """Build the provider URL the user's browser is sent to.

    ``access_type=offline`` together with ``prompt=consent`` is what makes
    the provider issue a refresh token on every consent.
    """
    params = [
        ("client_id", client_id),
        ("redirect_uri", redirect_uri),
        ("response_type", "code"),
        ("scope", scope),
        ("access_type", "offline"),
        ("prompt", "consent"),
        ("code_challenge", code_challenge),
        ("code_challenge_method", "S256"),
    ]
    return f"{authorization_url}?{urlencode(params)}"


class AuthorizationSession:
    """A single authorization attempt and the resources it owns.

    Args:
        client_id: OAuth client ID.
        client_secret: OAuth client secret.
        port: Loopback port; must match the registered redirect URI.
        listener: Factory for the loopback listener.
        exchanger: Token endpoint client.
        open_external: Launches the system browser on a URL. A ``False``
            return is logged; an exception fails the session.
        save: Persists the refresh token. An exception fails the session
            with ``StorageFailure``.
        scope: OAuth scope to request.
        authorization_url: Provider authorization endpoint.
        timeout: Seconds to wait for the callback, fixed for the session's
            lifetime.

    Example::

        session = AuthorizationSession(client_id, secret, 39587,
                                       listener=LoopbackListener(),
                                       exchanger=TokenExchanger(),
                                       open_external=webbrowser.open,
                                       save=store.save)
        session.subscribe(print)
        await session.start()
        outcome = await session.wait()
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        port: int,
        *,
        listener: LoopbackListener,
        exchanger: TokenExchanger,
        open_external: OpenExternal,
        save: SaveRefreshToken,
        scope: str = DRIVE_FILE_SCOPE,
        authorization_url: str = GOOGLE_AUTH_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.port = port
        self.redirect_uri = redirect_uri_for(port)
        self.scope = scope
        self.timeout = timeout
        self.created_at = datetime.now(timezone.utc)
        self.authorization_url: Optional[str] = None

        self._authorization_endpoint = authorization_url
        self._listener = listener
        self._exchanger = exchanger
        self._open_external = open_external
        self._save = save

        self._state = SessionState.IDLE
        self._pkce: Optional[PKCEPair] = None
        self._handle: Optional[ListenerHandle] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._exchange_task: Optional[asyncio.Task] = None
        self._subscribers: list[OnSettled] = []
        self._outcome: Optional[SettledOutcome] = None
        self._settled = asyncio.Event()

    # ------------------------------------------------------------------ #
    # Public surface
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def outcome(self) -> Optional[SettledOutcome]:
        """The settled outcome, or ``None`` while the session is live."""
        return self._outcome

    @property
    def code_verifier(self) -> Optional[str]:
        return self._pkce.verifier if self._pkce else None

    @property
    def code_challenge(self) -> Optional[str]:
        return self._pkce.challenge if self._pkce else None

    @property
    def listener_active(self) -> bool:
        """True while this session still holds a bound listening socket."""
        return self._handle is not None and self._handle.is_active

    async def start(self) -> None:
        """Bind the listener, open the browser and arm the timeout.

        Never raises for authorization failures: a busy port or a browser
        that cannot be launched settles the session as ``Failed``.

        Raises:
            RuntimeError: If the session was already started.
        """
        if self._state.is_terminal:
            return
        if self._state is not SessionState.IDLE:
            raise RuntimeError("AuthorizationSession.start() may only be called once")

        self._pkce = generate_pkce_pair()
        try:
            handle = await self._listener.start(self.port, self.handle_callback)
        except PortInUseError as exc:
            self._fail(exc)
            return

        if self._state.is_terminal:
            # Cancelled while the port was being bound.
            self._listener.stop(handle)
            return
        self._handle = handle
        self._transition(SessionState.LISTENER_STARTED)

        self.authorization_url = build_authorization_url(
            self.client_id,
            self.redirect_uri,
            self._pkce.challenge,
            scope=self.scope,
            authorization_url=self._authorization_endpoint,
        )
        try:
            opened = self._open_external(self.authorization_url)
        except Exception as exc:
            self._fail(BrowserLaunchError(f"Could not launch the browser: {exc}"))
            return
        if opened is False:
            logger.warning("No browser could be launched; open the authorization URL manually")

        self._transition(SessionState.AWAITING_CALLBACK)
        self._timer = asyncio.get_running_loop().call_later(self.timeout, self._on_timeout)

    def subscribe(self, on_settled: OnSettled) -> None:
        """Register *on_settled* for the session's single outcome.

        A subscriber added after the session settled is called immediately.
        """
        if self._outcome is not None:
            self._notify(on_settled, self._outcome)
        else:
            self._subscribers.append(on_settled)

    async def wait(self) -> SettledOutcome:
        """Wait until the session settles and return its outcome."""
        await self._settled.wait()
        assert self._outcome is not None
        return self._outcome

    def cancel(self) -> None:
        """Tear the session down as ``Failed``/``Cancelled``. No-op once settled."""
        if not self._state.is_terminal:
            self._fail(AuthorizationCancelled("Authorization was cancelled"))

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def handle_callback(self, result: CallbackResult) -> tuple[CallbackPage, Optional[str]]:
        """Advance the session for one parsed callback and pick the page to answer with.

        Only a session in ``AwaitingCallback`` reacts; anything arriving
        later gets the generic page and leaves the state untouched.
        """
        if self._state is not SessionState.AWAITING_CALLBACK:
            logger.debug("Ignoring callback received in state %s", self._state.value)
            return CallbackPage.UNEXPECTED, None

        if result.code is not None:
            self._transition(SessionState.EXCHANGING_CODE)
            # Stop accepting; connections already open finish with the generic page.
            self._listener.stop(self._handle, cancel_connections=False)
            self._exchange_task = asyncio.get_running_loop().create_task(
                self._exchange(result.code)
            )
            return CallbackPage.SUCCESS, None

        if result.error is not None:
            message = result.error
            if result.error_description:
                message = f"{result.error}: {result.error_description}"
            self._fail(ProviderError(message))
            return CallbackPage.FAILURE, message

        logger.debug("Ignoring callback without code or error")
        return CallbackPage.UNEXPECTED, None

    async def _exchange(self, code: str) -> None:
        assert self._pkce is not None
        try:
            token = await self._exchanger.exchange(
                self.client_id,
                self.client_secret,
                code,
                self._pkce.verifier,
                self.redirect_uri,
            )
        except AuthorizationError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            logger.exception("Unexpected error during token exchange")
            self._fail(NetworkError(f"Token exchange failed: {exc}"))
            return

        if self._state is not SessionState.EXCHANGING_CODE:
            return
        refresh_token = token.refresh_token
        assert refresh_token is not None

        try:
            self._save(refresh_token)
        except CredentialStoreError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            self._fail(CredentialStoreError(f"Could not store the refresh token: {exc}"))
            return

        self._settle(
            SessionState.AUTHORIZED,
            SettledOutcome(success=True, refresh_token=refresh_token),
        )

    def _on_timeout(self) -> None:
        self._timer = None
        if self._state.is_terminal:
            return
        exc = AuthorizationTimeout(
            f"Authorization timed out after {self.timeout:g} seconds"
        )
        self._settle(
            SessionState.TIMED_OUT,
            SettledOutcome(success=False, error_kind=exc.kind, error_message=str(exc)),
        )

    def _fail(self, exc: AuthorizationError) -> None:
        self._settle(
            SessionState.FAILED,
            SettledOutcome(success=False, error_kind=exc.kind, error_message=str(exc)),
        )

    def _transition(self, state: SessionState) -> None:
        logger.info("Authorization session: %s -> %s", self._state.value, state.value)
        self._state = state

    def _settle(self, state: SessionState, outcome: SettledOutcome) -> None:
        if self._state.is_terminal:
            return
        if not outcome.success:
            logger.warning(
                "Authorization %s (%s): %s",
                state.value,
                outcome.error_kind.value if outcome.error_kind else "unknown",
                outcome.error_message,
            )
        self._transition(state)
        self._outcome = outcome
        self._release()
        self._settled.set()

        subscribers, self._subscribers = self._subscribers, []
        for on_settled in subscribers:
            self._notify(on_settled, outcome)

    def _release(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        self._listener.stop(self._handle)
        self._handle = None

        task, self._exchange_task = self._exchange_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    @staticmethod
    def _notify(on_settled: OnSettled, outcome: SettledOutcome) -> None:
        try:
            on_settled(outcome)
        except Exception:
            logger.exception("on_settled subscriber raised")
