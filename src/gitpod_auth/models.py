"""Canonical Pydantic models shared across all gitpod_auth modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RPCConfig` and :class:`ProviderConfig`.

**Session and protocol models** -- produced during a login and exchanged with
the Gitpod backend:
    :class:`Account`, :class:`Session`, :class:`PKCEPair`,
    :class:`AuthorizationRequest`, :class:`User`, and :class:`TokenResponse`.

All models use Pydantic v2. Models that cross a process boundary (the stored
session, the RPC user object, the token response) ignore unknown keys so that
newer servers and newer writers do not break older readers.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_SCOPES: list[str] = [
    "function:getGitpodTokenScopes",
    "function:accessCodeSyncStorage",
    "resource:default",
]
"""Scopes every Gitpod session must carry."""


# --- Configuration ---


class RPCConfig(BaseModel):
    """Reconnection policy for the authenticated RPC channel.

    Delays are in seconds. The retry ceiling bounds how long an orphaned
    login keeps dialling a backend that never comes up.
    """

    min_reconnection_delay: float = Field(
        default=1.0, description="Delay before the first reconnect attempt"
    )
    max_reconnection_delay: float = Field(
        default=10.0, description="Upper bound for the backoff delay"
    )
    reconnection_delay_grow_factor: float = Field(
        default=1.3, description="Backoff multiplier applied per failed attempt"
    )
    connection_timeout: float = Field(
        default=10.0, description="Timeout for a single connection attempt"
    )
    max_retries: int = Field(
        default=10, description="Reconnect attempts before the channel gives up"
    )
    min_uptime: float = Field(
        default=5.0,
        description="Seconds a connection must stay up before the retry count resets",
    )


class ProviderConfig(BaseModel):
    """Everything needed to talk to one Gitpod installation.

    Passed explicitly to every component that needs it; there is no
    process-wide provider registration, so several independent instances
    can coexist (e.g. in tests).

    Example::

        ProviderConfig(base_url="https://gitpod.example.com")
    """

    id: str = Field(default="gitpod", description="Provider identifier")
    label: str = Field(default="Gitpod", description="Human-readable provider name")
    base_url: str = Field(
        default="https://gitpod.io", description="Gitpod installation URL"
    )
    client_id: str = Field(default="vscode+gitpod", description="OAuth2 client id")
    redirect_uri: str = Field(
        default="vscode://gitpod.gitpod-desktop/complete-gitpod-auth",
        description="Callback URI the authorization server redirects to",
    )
    scopes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SCOPES),
        description="Scopes requested for every session",
    )
    login_timeout: float = Field(
        default=300.0, description="Seconds to wait for the browser login to finish"
    )
    rpc: RPCConfig = Field(default_factory=RPCConfig)

    @property
    def authorization_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/oauth/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/oauth/token"

    @property
    def rpc_url(self) -> str:
        """WebSocket endpoint of the Gitpod server (``https`` becomes ``wss``)."""
        base = self.base_url.rstrip("/")
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):]
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):]
        return base

    @property
    def session_key(self) -> str:
        """Secret-storage key holding the serialised session."""
        return f"{self.id}.authSession"

    @property
    def session_id(self) -> str:
        return f"{self.id}.user"


# --- Session ---


class Account(BaseModel):
    """The identity a session belongs to."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    label: str
    id: str


class Session(BaseModel):
    """A completed login: account identity, granted scopes and the access token.

    Serialised with the camelCase ``accessToken`` key (``model_dump(by_alias=True)``)
    so stored records stay readable by other clients of the same secret store.
    Instances are immutable; a session is only ever created or deleted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    account: Account
    scopes: list[str] = Field(default_factory=list)
    access_token: str = Field(alias="accessToken")


class PKCEPair(BaseModel):
    """A PKCE verifier and its S256 challenge (:rfc:`7636`). Never persisted."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str
    code_challenge: str


class AuthorizationRequest(BaseModel):
    """A fully built authorization request for one login attempt.

    ``url`` already carries ``client_id``, ``redirect_uri``, ``scope``,
    ``code_challenge`` and ``code_challenge_method=S256``. The PKCE pair is
    kept alongside so the redirect handler can finish the code exchange.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    redirect_uri: str
    scopes: list[str]
    pkce: PKCEPair


# --- Backend payloads ---


class User(BaseModel):
    """Subset of the Gitpod user object returned by ``getLoggedInUser``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None


class TokenResponse(BaseModel):
    """Token endpoint response of the authorization code exchange."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
