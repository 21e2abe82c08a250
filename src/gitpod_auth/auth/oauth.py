"""Redirect completion: code exchange, session materialization, storage.

This is the redirect-handler half of a login (see :mod:`gitpod_auth.auth.flow`).
:meth:`OAuthClient.complete` turns the authorization code from the redirect
into a stored :class:`~gitpod_auth.models.Session`; the storage write is what
the waiting :class:`~gitpod_auth.auth.flow.AuthorizationFlow` observes.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from gitpod_auth.auth.session import resolve_authentication_session
from gitpod_auth.auth.session_store import SessionStore
from gitpod_auth.exceptions import AuthError
from gitpod_auth.models import AuthorizationRequest, ProviderConfig, Session, TokenResponse
from gitpod_auth.rpc.gitpod import ConnectionFactory, open_gitpod_connection

logger = logging.getLogger(__name__)

_TOKEN_TIMEOUT = 30.0


class OAuthClient:
    """OAuth2 Authorization Code + PKCE client for one Gitpod installation.

    Args:
        config: Provider whose token endpoint is used.
        session_store: Receives the completed session.
        transport: Optional :mod:`httpx` transport (``httpx.MockTransport`` in tests).
        connection_factory: Opens the RPC connection used to resolve the user.
    """

    def __init__(
        self,
        config: ProviderConfig,
        session_store: SessionStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connection_factory: ConnectionFactory = open_gitpod_connection,
    ) -> None:
        self._config = config
        self._store = session_store
        self._transport = transport
        self._connection_factory = connection_factory

    async def exchange_code(self, request: AuthorizationRequest, code: str) -> TokenResponse:
        """Exchange the authorization code for an access token.

        Args:
            request: The request the code was issued for; supplies the PKCE
                verifier and the redirect URI.
            code: The authorization code received from the redirect.

        Returns:
            The parsed token response.

        Raises:
            AuthError: On HTTP errors or if ``access_token`` is missing
                from the response.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": request.redirect_uri,
            "client_id": self._config.client_id,
            "code_verifier": request.pkce.code_verifier,
        }

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=_TOKEN_TIMEOUT
            ) as client:
                response = await client.post(
                    self._config.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                token_data: Any = response.json()
        except httpx.HTTPStatusError as exc:
            raise AuthError(
                f"Token exchange failed with status {exc.response.status_code}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthError(f"Token exchange failed: {exc}") from exc
        except ValueError as exc:
            raise AuthError(f"Token endpoint returned invalid JSON: {exc}") from exc

        if not isinstance(token_data, dict) or "access_token" not in token_data:
            raise AuthError("Token response missing 'access_token' field")
        try:
            return TokenResponse.model_validate(token_data)
        except ValidationError as exc:
            raise AuthError(f"Unexpected token response: {exc}") from exc

    async def complete(self, request: AuthorizationRequest, code: str) -> Session:
        """Finish a login: exchange *code*, resolve the user, store the session.

        The session is recorded with the scopes of *request*. Nothing is
        stored unless every step succeeds.

        Raises:
            AuthError: If the exchange fails.
            IdentityLookupFailed: If the user cannot be resolved.
        """
        token = await self.exchange_code(request, code)
        session = await resolve_authentication_session(
            self._config,
            token.access_token,
            request.scopes,
            connection_factory=self._connection_factory,
        )
        self._store.write(session)
        logger.debug("Login completed for account %s", session.account.id)
        return session
