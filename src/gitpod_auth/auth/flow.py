"""Browser-based login orchestration.

A login has two halves that never see each other directly:

1. :class:`AuthorizationFlow` builds the authorization URL, hands it to the
   browser and then waits for a session to show up in secret storage.
2. Whatever receives the redirect (a URI handler, or the loopback
   :class:`~gitpod_auth.auth.callback.CallbackReceiver` used by the CLI)
   exchanges the code, materializes the session and writes it to the store.

The storage change event is the only link between them. The flow subscribes
*before* opening the browser, so a redirect handled very quickly is never
missed, and it starts the login deadline at the same moment.

State machine::

    IDLE -> AWAITING_REDIRECT -> SESSION_OBSERVED
                              -> TIMED_OUT
                              -> CANCELLED

There is no internal retry. Each call to :meth:`AuthorizationFlow.run`
starts over from ``IDLE``.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Awaitable, Callable, Optional, Sequence, Union
from urllib.parse import urlencode

from gitpod_auth.auth.events import PendingEvent, promise_from_event
from gitpod_auth.auth.pkce import generate_pkce_pair
from gitpod_auth.auth.scopes import login_scopes
from gitpod_auth.auth.secret_storage import SecretStorageChangeEvent
from gitpod_auth.auth.session_store import SessionStore
from gitpod_auth.exceptions import (
    AuthError,
    BrowserOpenFailed,
    LoginCancelled,
    LoginTimedOut,
)
from gitpod_auth.models import AuthorizationRequest, PKCEPair, ProviderConfig, Session

logger = logging.getLogger(__name__)

OpenUrl = Callable[[str], Union[bool, Awaitable[bool]]]
"""Opens a URL externally; returns False (or raises BrowserOpenFailed) on failure."""

OpenFailed = Callable[[str], Union[None, Awaitable[None]]]


class FlowState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    SESSION_OBSERVED = "session_observed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


def build_authorization_request(
    config: ProviderConfig,
    pkce: PKCEPair,
    scopes: Optional[Sequence[str]] = None,
    redirect_uri: Optional[str] = None,
) -> AuthorizationRequest:
    """Assemble the authorization URL for one login attempt.

    Args:
        config: Provider to log in to.
        pkce: Verifier/challenge pair; only the challenge goes into the URL.
        scopes: Scopes to request. Defaults to :func:`login_scopes`.
        redirect_uri: Overrides ``config.redirect_uri``.
    """
    requested = list(scopes) if scopes is not None else login_scopes(config)
    redirect = redirect_uri or config.redirect_uri
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": redirect,
        "scope": " ".join(requested),
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": "S256",
    }
    return AuthorizationRequest(
        url=f"{config.authorization_url}?{urlencode(params)}",
        redirect_uri=redirect,
        scopes=requested,
        pkce=pkce,
    )


async def _maybe_await(value):  # type: ignore[no-untyped-def]
    if inspect.isawaitable(value):
        return await value
    return value


class AuthorizationFlow:
    """Drive one browser login and wait for the resulting session.

    Args:
        config: Provider to log in to.
        session_store: Where the redirect handler will write the session.
        open_url: Opens the authorization URL in a browser.
        on_open_failed: Called with the URL when *open_url* fails, e.g. to
            show it for manual copying. The flow keeps waiting either way.
        timeout: Seconds to wait for the session. Defaults to
            ``config.login_timeout``.
        redirect_uri: Overrides ``config.redirect_uri`` in prepared requests.
    """

    def __init__(
        self,
        config: ProviderConfig,
        session_store: SessionStore,
        open_url: OpenUrl,
        on_open_failed: Optional[OpenFailed] = None,
        timeout: Optional[float] = None,
        redirect_uri: Optional[str] = None,
    ) -> None:
        self._config = config
        self._store = session_store
        self._open_url = open_url
        self._on_open_failed = on_open_failed
        self._timeout = timeout if timeout is not None else config.login_timeout
        self._redirect_uri = redirect_uri
        self.state = FlowState.IDLE

    @property
    def timeout(self) -> float:
        return self._timeout

    def prepare(self, scopes: Optional[Sequence[str]] = None) -> AuthorizationRequest:
        """Generate a fresh PKCE pair and build the request for *scopes*.

        The requested scopes always include the configured ones and the
        function scopes needed to resolve the user afterwards.
        """
        return build_authorization_request(
            self._config,
            generate_pkce_pair(),
            scopes=login_scopes(self._config, scopes),
            redirect_uri=self._redirect_uri,
        )

    async def login(self, scopes: Optional[Sequence[str]] = None) -> Session:
        return await self.run(self.prepare(scopes))

    async def run(self, request: AuthorizationRequest) -> Session:
        """Open *request* in the browser and wait for the stored session.

        Returns:
            The session written under ``config.session_key``.

        Raises:
            LoginTimedOut: If nothing is stored before the deadline.
            LoginCancelled: If another secret key changes first, or the
                session key is deleted.
            MalformedSession: If the stored value is not a valid session.
            AuthError: If a login is already running on this flow.
        """
        if self.state is FlowState.AWAITING_REDIRECT:
            raise AuthError("A login is already in progress")
        self.state = FlowState.AWAITING_REDIRECT

        pending = promise_from_event(self._store.on_did_change, self._on_storage_change)
        try:
            session = await asyncio.wait_for(
                self._open_and_wait(request, pending), self._timeout
            )
        except asyncio.TimeoutError as exc:
            self.state = FlowState.TIMED_OUT
            raise LoginTimedOut(
                f"Login did not complete within {self._timeout:g} seconds"
            ) from exc
        except LoginCancelled:
            self.state = FlowState.CANCELLED
            raise
        except BaseException:
            self.state = FlowState.IDLE
            raise
        finally:
            pending.cancel()

        self.state = FlowState.SESSION_OBSERVED
        logger.debug("Session %s observed for account %s", session.id, session.account.id)
        return session

    async def _open_and_wait(
        self, request: AuthorizationRequest, pending: PendingEvent
    ) -> Session:
        logger.debug("Opening authorization URL in the browser")
        try:
            opened = await _maybe_await(self._open_url(request.url))
        except BrowserOpenFailed as exc:
            logger.debug("Browser open failed: %s", exc)
            opened = False
        if not opened:
            await self._report_open_failed(request.url)

        logger.debug("Waiting for a change event on '%s'", self._store.key)
        return await pending

    async def _report_open_failed(self, url: str) -> None:
        if self._on_open_failed is None:
            logger.warning("Couldn't open %s automatically", url)
            return
        await _maybe_await(self._on_open_failed(url))

    def _on_storage_change(self, event: SecretStorageChangeEvent, resolve, reject) -> None:  # type: ignore[no-untyped-def]
        if event.key != self._store.key:
            reject(LoginCancelled(f"Login cancelled: secret '{event.key}' changed"))
            return
        session = self._store.read()
        if session is None:
            reject(LoginCancelled("Login cancelled: the session was removed"))
        else:
            resolve(session)
