"""Desktop OAuth2 authorization (Authorization Code + PKCE, loopback redirect).

The main entry points are:

- :class:`Authorizer` -- starts, replaces and cancels authorization sessions.
- :class:`AuthorizationSession` -- the state machine for one attempt; deliver
  its outcome via :meth:`~AuthorizationSession.subscribe` or
  :meth:`~AuthorizationSession.wait`.
- :class:`TokenExchanger` -- code exchange and refresh against the token endpoint.
- :class:`CredentialStore` -- on-disk storage for the obtained refresh token.

Typical usage::

    from syncauth.auth import Authorizer

    authorizer = Authorizer()
    session = await authorizer.authorize(client_id, client_secret, 39587)
    outcome = await session.wait()
"""

from syncauth.auth.credential_store import CredentialStore
from syncauth.auth.exchanger import TokenExchanger
from syncauth.auth.listener import ListenerHandle, LoopbackListener
from syncauth.auth.manager import Authorizer
from syncauth.auth.pkce import compute_code_challenge, generate_pkce_pair
from syncauth.auth.session import (
    AuthorizationSession,
    build_authorization_url,
    redirect_uri_for,
)

__all__ = [
    "AuthorizationSession",
    "Authorizer",
    "CredentialStore",
    "ListenerHandle",
    "LoopbackListener",
    "TokenExchanger",
    "build_authorization_url",
    "compute_code_challenge",
    "generate_pkce_pair",
    "redirect_uri_for",
]
