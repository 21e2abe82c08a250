"""Typed bridge between the login flow and the single stored session.

A :class:`SessionStore` wraps one key of a
:class:`~gitpod_auth.auth.secret_storage.SecretStorage`. It writes sessions
as JSON (camelCase ``accessToken``), reads them back into
:class:`~gitpod_auth.models.Session`, and re-exposes the storage's change
stream so the flow can wait for the redirect handler's eventual write.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from gitpod_auth.auth.events import Disposable
from gitpod_auth.auth.secret_storage import SecretStorage, SecretStorageChangeEvent
from gitpod_auth.exceptions import MalformedSession
from gitpod_auth.models import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """Read, write and watch the session stored under a fixed key.

    Args:
        storage: The backing secret storage.
        key: The secret key, normally ``ProviderConfig.session_key``.
    """

    def __init__(self, storage: SecretStorage, key: str) -> None:
        self._storage = storage
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def on_did_change(
        self, listener: Callable[[SecretStorageChangeEvent], Any]
    ) -> Disposable:
        """Subscribe to *every* storage change, not only this key's."""
        return self._storage.on_did_change(listener)

    def exists(self) -> bool:
        """Whether anything is stored under the key, parseable or not."""
        return self._storage.get(self._key) is not None

    def read(self) -> Optional[Session]:
        """Return the stored session, or ``None`` when nothing is stored.

        Raises:
            MalformedSession: If the stored value is not a valid session record.
        """
        raw = self._storage.get(self._key)
        if raw is None:
            return None
        try:
            return Session.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise MalformedSession(
                f"Stored session under '{self._key}' is malformed: {exc}"
            ) from exc

    def write(self, session: Session) -> None:
        logger.debug("Storing session %s for account %s", session.id, session.account.id)
        self._storage.store(self._key, session.model_dump_json(by_alias=True))

    def delete(self) -> None:
        self._storage.delete(self._key)
