"""Tests for the authorization code exchange and redirect completion."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from gitpod_auth.auth.flow import build_authorization_request
from gitpod_auth.auth.oauth import OAuthClient
from gitpod_auth.auth.pkce import generate_pkce_pair
from gitpod_auth.auth.session_store import SessionStore
from gitpod_auth.exceptions import AuthError, IdentityLookupFailed
from gitpod_auth.models import AuthorizationRequest, ProviderConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_transport(
    payload: object | None = None,
    status_code: int = 200,
    seen: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """Mock token endpoint returning *payload* as JSON."""
    body = {"access_token": "new-token", "token_type": "Bearer"} if payload is None else payload

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def auth_request(provider_config: ProviderConfig) -> AuthorizationRequest:
    return build_authorization_request(
        provider_config,
        generate_pkce_pair(),
        scopes=["resource:default", "function:getLoggedInUser"],
        redirect_uri="http://127.0.0.1:9999/complete-gitpod-auth",
    )


# ---------------------------------------------------------------------------
# exchange_code
# ---------------------------------------------------------------------------


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_posts_pkce_exchange(
        self,
        provider_config: ProviderConfig,
        session_store: SessionStore,
        auth_request: AuthorizationRequest,
    ) -> None:
        seen: list[httpx.Request] = []
        client = OAuthClient(provider_config, session_store, transport=_token_transport(seen=seen))

        token = await client.exchange_code(auth_request, "the-code")

        assert token.access_token == "new-token"
        assert len(seen) == 1
        request = seen[0]
        assert str(request.url) == "https://gitpod.example.com/api/oauth/token"
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        assert form == {
            "grant_type": "authorization_code",
            "code": "the-code",
            "redirect_uri": auth_request.redirect_uri,
            "client_id": "vscode+gitpod",
            "code_verifier": auth_request.pkce.code_verifier,
        }

    @pytest.mark.asyncio
    async def test_http_error(
        self,
        provider_config: ProviderConfig,
        session_store: SessionStore,
        auth_request: AuthorizationRequest,
    ) -> None:
        client = OAuthClient(
            provider_config,
            session_store,
            transport=_token_transport({"error": "invalid_grant"}, status_code=400),
        )
        with pytest.raises(AuthError, match="status 400"):
            await client.exchange_code(auth_request, "bad")

    @pytest.mark.asyncio
    async def test_missing_access_token(
        self,
        provider_config: ProviderConfig,
        session_store: SessionStore,
        auth_request: AuthorizationRequest,
    ) -> None:
        client = OAuthClient(
            provider_config, session_store, transport=_token_transport({"token_type": "Bearer"})
        )
        with pytest.raises(AuthError, match="access_token"):
            await client.exchange_code(auth_request, "code")

    @pytest.mark.asyncio
    async def test_transport_error(
        self,
        provider_config: ProviderConfig,
        session_store: SessionStore,
        auth_request: AuthorizationRequest,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = OAuthClient(provider_config, session_store, transport=httpx.MockTransport(handler))
        with pytest.raises(AuthError, match="Token exchange failed"):
            await client.exchange_code(auth_request, "code")


# ---------------------------------------------------------------------------
# complete
# ---------------------------------------------------------------------------


class TestComplete:
    @pytest.mark.asyncio
    async def test_stores_materialized_session(
        self,
        provider_config: ProviderConfig,
        session_store: SessionStore,
        auth_request: AuthorizationRequest,
        fake_connections,
    ) -> None:
        client = OAuthClient(
            provider_config,
            session_store,
            transport=_token_transport(),
            connection_factory=fake_connections,
        )

        session = await client.complete(auth_request, "code")

        assert session.access_token == "new-token"
        assert session.scopes == auth_request.scopes
        assert session.account.id == "u-123"
        assert session_store.read() == session
        assert fake_connections.tokens == ["new-token"]

    @pytest.mark.asyncio
    async def test_nothing_stored_when_lookup_fails(
        self,
        provider_config: ProviderConfig,
        session_store: SessionStore,
        auth_request: AuthorizationRequest,
        failing_connections,
    ) -> None:
        client = OAuthClient(
            provider_config,
            session_store,
            transport=_token_transport(),
            connection_factory=failing_connections,
        )
        with pytest.raises(IdentityLookupFailed):
            await client.complete(auth_request, "code")
        assert session_store.read() is None
