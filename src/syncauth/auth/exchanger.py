"""Token endpoint client: authorization-code exchange and refresh.

Both calls are single-shot. Authorization codes are single-use, so a failed
exchange is reported, never retried; the user starts a new authorization
instead.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from syncauth.exceptions import MissingRefreshTokenError, NetworkError, ProviderError
from syncauth.models import GOOGLE_TOKEN_URL, TokenResponse

logger = logging.getLogger(__name__)


class TokenExchanger:
    """POSTs form-encoded grants to the provider's token endpoint.

    Args:
        token_url: The provider's token endpoint.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.
    """

    def __init__(
        self,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token_url = token_url
        self._timeout = timeout
        self._transport = transport

    async def exchange(
        self,
        client_id: str,
        client_secret: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Args:
            client_id: OAuth client ID.
            client_secret: OAuth client secret.
            code: The authorization code from the redirect.
            code_verifier: The PKCE verifier generated for the same session.
            redirect_uri: Exactly the redirect URI sent in the authorization
                request.

        Returns:
            The parsed :class:`~syncauth.models.TokenResponse`, guaranteed to
            carry a ``refresh_token``.

        Raises:
            NetworkError: On transport failure or a non-JSON body.
            ProviderError: If the endpoint answers with an error status.
            MissingRefreshTokenError: If the response has no refresh token.
        """
        data = {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        token = await self._post(data, "Token exchange")
        if not token.refresh_token:
            logger.warning("Token response did not include a refresh token")
            raise MissingRefreshTokenError()
        return token

    async def refresh(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
    ) -> TokenResponse:
        """Trade a stored refresh token for a new access token.

        Raises:
            NetworkError: On transport failure or a non-JSON body.
            ProviderError: If the endpoint rejects the grant; ``invalid_grant``
                means the refresh token was revoked or expired.
        """
        data = {
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            token = await self._post(data, "Token refresh")
        except ProviderError as exc:
            if "invalid_grant" in str(exc):
                raise ProviderError(
                    "The refresh token is invalid or revoked. "
                    "Run 'syncauth auth login' to authorize again."
                ) from exc
            raise
        if not token.access_token:
            raise ProviderError("Token refresh response missing 'access_token' field")
        return token

    async def _post(self, data: dict[str, str], action: str) -> TokenResponse:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise NetworkError(f"{action} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(f"{action} failed: {_describe_error(response)}")

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"{action} failed: token endpoint returned invalid JSON"
            ) from exc
        if not isinstance(payload, dict):
            raise NetworkError(f"{action} failed: unexpected token response shape")

        try:
            return TokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise NetworkError(f"{action} failed: malformed token response: {exc}") from exc


def _describe_error(response: httpx.Response) -> str:
    """Render an error status as ``HTTP 400: invalid_grant - Bad Request``."""
    prefix = f"HTTP {response.status_code}"
    try:
        detail = response.json()
    except ValueError:
        text = response.text[:200]
        return f"{prefix}: {text}" if text else prefix
    if isinstance(detail, dict):
        error = detail.get("error")
        description = detail.get("error_description")
        if isinstance(error, dict):
            # Some Google endpoints nest {"error": {"message": ...}}
            return f"{prefix}: {error.get('message', error)}"
        if error and description:
            return f"{prefix}: {error} - {description}"
        if error:
            return f"{prefix}: {error}"
    return prefix
