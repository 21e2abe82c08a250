"""Browser-based Gitpod sign-in.

The main entry points are:

- :class:`GitpodAuthProvider` -- list, create and remove the single session.
- :class:`AuthorizationFlow` -- opens the browser and waits for the session
  to appear in storage.
- :class:`OAuthClient` -- completes a redirect: code exchange, user lookup,
  storage write.
- :class:`SecretStorage` / :class:`SessionStore` -- persistent storage of
  the session record with change notifications.

Typical usage::

    from gitpod_auth.auth import AuthorizationFlow, SecretStorage, SessionStore

    store = SessionStore(SecretStorage(), config.session_key)
    flow = AuthorizationFlow(config, store, open_url=webbrowser.open)
    session = await flow.login()
"""

from gitpod_auth.auth.callback import CallbackReceiver
from gitpod_auth.auth.events import Disposable, EventEmitter, PendingEvent, promise_from_event
from gitpod_auth.auth.flow import AuthorizationFlow, FlowState, build_authorization_request
from gitpod_auth.auth.oauth import OAuthClient
from gitpod_auth.auth.pkce import generate_pkce_pair
from gitpod_auth.auth.provider import GitpodAuthProvider, SessionsChangeEvent
from gitpod_auth.auth.scopes import check_scopes, has_scopes, hash_token, login_scopes
from gitpod_auth.auth.secret_storage import SecretStorage, SecretStorageChangeEvent
from gitpod_auth.auth.session import resolve_authentication_session
from gitpod_auth.auth.session_store import SessionStore

__all__ = [
    "AuthorizationFlow",
    "CallbackReceiver",
    "Disposable",
    "EventEmitter",
    "FlowState",
    "GitpodAuthProvider",
    "OAuthClient",
    "PendingEvent",
    "SecretStorage",
    "SecretStorageChangeEvent",
    "SessionStore",
    "SessionsChangeEvent",
    "build_authorization_request",
    "check_scopes",
    "generate_pkce_pair",
    "has_scopes",
    "hash_token",
    "login_scopes",
    "promise_from_event",
    "resolve_authentication_session",
]
