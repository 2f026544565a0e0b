"""Authorizer -- the entry point a host application uses to obtain a refresh token.

The :class:`Authorizer` keeps at most one live
:class:`~syncauth.auth.session.AuthorizationSession`. Calling
:meth:`~Authorizer.authorize` while a session is still live tears the old one
down (timer, listening socket, in-flight exchange) before the port is bound
again, so two sessions never compete for the loopback port.

See Also:
    :class:`~syncauth.auth.session.AuthorizationSession` -- the state machine.
    :class:`~syncauth.auth.credential_store.CredentialStore` -- the default
    ``save`` collaborator.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Optional

from syncauth.auth.credential_store import CredentialStore
from syncauth.auth.exchanger import TokenExchanger
from syncauth.auth.listener import LoopbackListener
from syncauth.auth.session import AuthorizationSession, OpenExternal, SaveRefreshToken
from syncauth.models import (
    DEFAULT_TIMEOUT_SECONDS,
    DRIVE_FILE_SCOPE,
    GOOGLE_AUTH_URL,
    ProviderConfig,
)

logger = logging.getLogger(__name__)


class Authorizer:
    """Creates, replaces and cancels authorization sessions.

    Args:
        save: Persists the refresh token. Defaults to
            :meth:`CredentialStore.save` for the session's client ID.
        open_external: Launches the browser. Defaults to :func:`webbrowser.open`.
        exchanger: Token endpoint client.
        listener: Loopback listener factory.
        scope: OAuth scope to request.
        authorization_url: Provider authorization endpoint.
        timeout: Per-session callback timeout in seconds.

    Example::

        authorizer = Authorizer()
        session = await authorizer.authorize(client_id, client_secret, 39587)
        session.subscribe(lambda outcome: print(outcome.success))
        await session.wait()
    """

    def __init__(
        self,
        save: Optional[SaveRefreshToken] = None,
        open_external: OpenExternal = webbrowser.open,
        exchanger: Optional[TokenExchanger] = None,
        listener: Optional[LoopbackListener] = None,
        scope: str = DRIVE_FILE_SCOPE,
        authorization_url: str = GOOGLE_AUTH_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._save = save
        self._open_external = open_external
        self._exchanger = exchanger or TokenExchanger()
        self._listener = listener or LoopbackListener()
        self._scope = scope
        self._authorization_url = authorization_url
        self._timeout = timeout
        self._session: Optional[AuthorizationSession] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, provider: ProviderConfig, **kwargs) -> "Authorizer":
        """Build an authorizer from the persisted provider configuration."""
        kwargs.setdefault(
            "exchanger",
            TokenExchanger(provider.token_url, timeout=provider.request_timeout),
        )
        return cls(
            scope=provider.scope,
            authorization_url=provider.authorization_url,
            timeout=provider.timeout_seconds,
            **kwargs,
        )

    @property
    def session(self) -> Optional[AuthorizationSession]:
        """The most recent session, live or settled."""
        return self._session

    async def authorize(
        self, client_id: str, client_secret: str, port: int
    ) -> AuthorizationSession:
        """Start a new authorization session, replacing any live one.

        Returns once the session is waiting for the browser redirect or has
        already settled (for example with ``PortInUse``). Failures are
        reported through the session's outcome, never raised.
        """
        async with self._lock:
            previous = self._session
            if previous is not None and not previous.state.is_terminal:
                logger.info("Replacing unfinished authorization session")
                previous.cancel()

            save = self._save or CredentialStore(client_id=client_id, scope=self._scope).save
            session = AuthorizationSession(
                client_id,
                client_secret,
                port,
                listener=self._listener,
                exchanger=self._exchanger,
                open_external=self._open_external,
                save=save,
                scope=self._scope,
                authorization_url=self._authorization_url,
                timeout=self._timeout,
            )
            self._session = session
            await session.start()
            return session

    def cancel(self) -> None:
        """Cancel the live session, if any."""
        if self._session is not None:
            self._session.cancel()

    def shutdown(self) -> None:
        """Release everything on host shutdown. Safe to call repeatedly."""
        self.cancel()
        self._session = None
