"""The ``gitpod`` authentication provider.

:class:`GitpodAuthProvider` is the surface consumers use: list the stored
session, create one through a browser login, or remove it. Only a single
account is supported; a new login replaces the previous session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from gitpod_auth.auth.events import Disposable, EventEmitter
from gitpod_auth.auth.flow import AuthorizationFlow
from gitpod_auth.auth.scopes import has_scopes
from gitpod_auth.auth.session_store import SessionStore
from gitpod_auth.exceptions import ConfigError, MalformedSession
from gitpod_auth.models import ProviderConfig, Session

logger = logging.getLogger(__name__)

FlowFactory = Callable[[], AuthorizationFlow]


@dataclass(frozen=True)
class SessionsChangeEvent:
    added: list[Session] = field(default_factory=list)
    removed: list[Session] = field(default_factory=list)


class GitpodAuthProvider:
    """Session management for one Gitpod installation.

    Args:
        config: Provider settings (id, label, base URL, scopes).
        session_store: Where the single session lives.
        flow_factory: Builds a fresh :class:`AuthorizationFlow` per login.
    """

    supports_multiple_accounts = False

    def __init__(
        self,
        config: ProviderConfig,
        session_store: SessionStore,
        flow_factory: FlowFactory,
    ) -> None:
        self._config = config
        self._store = session_store
        self._flow_factory = flow_factory
        self._on_did_change_sessions: EventEmitter[SessionsChangeEvent] = EventEmitter()

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def label(self) -> str:
        return self._config.label

    def on_did_change_sessions(
        self, listener: Callable[[SessionsChangeEvent], Any]
    ) -> Disposable:
        return self._on_did_change_sessions.event(listener)

    def get_sessions(self, scopes: Optional[Sequence[str]] = None) -> list[Session]:
        """Return the stored session if it carries every scope in *scopes*.

        An empty list is returned when no scopes are requested or when
        nothing is stored.

        Raises:
            MalformedSession: If the stored record cannot be parsed.
        """
        if not scopes:
            return []
        session = self._store.read()
        if session is None:
            return []
        return [session] if has_scopes(session, scopes) else []

    async def create_session(self, scopes: Optional[Sequence[str]] = None) -> Session:
        """Run a browser login and return the new session."""
        previous = self._read_quietly()
        session = await self._flow_factory().login(scopes)
        removed = [previous] if previous is not None and previous != session else []
        self._on_did_change_sessions.fire(SessionsChangeEvent(added=[session], removed=removed))
        return session

    def remove_session(self, session_id: Optional[str] = None) -> None:
        """Delete the stored session. *session_id* is accepted for symmetry and ignored."""
        previous = self._read_quietly()
        self._store.delete()
        if previous is not None:
            self._on_did_change_sessions.fire(SessionsChangeEvent(removed=[previous]))

    def _read_quietly(self) -> Optional[Session]:
        try:
            return self._store.read()
        except (ConfigError, MalformedSession) as exc:
            logger.debug("Ignoring unreadable stored session: %s", exc)
            return None
