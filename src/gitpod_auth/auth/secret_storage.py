"""Persistent key/value secret storage with change notifications.

Stores every secret in a single JSON document,
``~/.local/share/gitpod-auth/secrets.json`` (XDG) or the
platform-equivalent directory. The document is written atomically via
:func:`~gitpod_auth.config.atomic_write` with ``0o600`` permissions so that
secrets are never world-readable, even momentarily.

Every mutation fires :attr:`SecretStorage.on_did_change` with a
:class:`SecretStorageChangeEvent` carrying only the affected key. Readers
re-fetch the value themselves; the event never carries the secret.

See Also:
    :class:`~gitpod_auth.auth.session_store.SessionStore` -- the typed view
    over the single session key.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from gitpod_auth.auth.events import Disposable, EventEmitter
from gitpod_auth.config import atomic_write, get_data_dir
from gitpod_auth.exceptions import ConfigError

_SECRETS_FILENAME = "secrets.json"


@dataclass(frozen=True)
class SecretStorageChangeEvent:
    """Notification that the value stored under ``key`` changed or was deleted."""

    key: str


class SecretStorage:
    """Read/write secrets by key.

    Args:
        path: Optional explicit location of the secrets document. Defaults to
            ``get_data_dir() / "secrets.json"``.

    Example::

        storage = SecretStorage()
        storage.store("gitpod.authSession", "{...}")
        assert storage.get("gitpod.authSession") == "{...}"
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path if path is not None else get_data_dir() / _SECRETS_FILENAME
        self._on_did_change: EventEmitter[SecretStorageChangeEvent] = EventEmitter()

    @property
    def path(self) -> Path:
        """The filesystem path to the secrets document."""
        return self._path

    def on_did_change(
        self, listener: Callable[[SecretStorageChangeEvent], Any]
    ) -> Disposable:
        """Subscribe to change events; usable as an event source."""
        return self._on_did_change.event(listener)

    def get(self, key: str) -> Optional[str]:
        """Return the secret stored under *key*, or ``None``.

        Raises:
            ConfigError: If the secrets document exists but is not valid JSON.
        """
        return self._read_all().get(key)

    def keys(self) -> list[str]:
        return sorted(self._read_all())

    def store(self, key: str, value: str) -> None:
        """Persist *value* under *key* and fire a change event.

        Raises:
            OSError: If the file cannot be written (permissions, disk full, etc.).
        """
        data = self._read_all()
        data[key] = value
        self._write_all(data)
        self._on_did_change.fire(SecretStorageChangeEvent(key=key))

    def delete(self, key: str) -> None:
        """Remove *key*; fires a change event only if something was removed."""
        data = self._read_all()
        if key not in data:
            return
        del data[key]
        self._write_all(data)
        self._on_did_change.fire(SecretStorageChangeEvent(key=key))

    def _read_all(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid secret storage at {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid secret storage at {self._path}: not an object")
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        text = json.dumps(data, indent=2, sort_keys=True) + "\n"
        atomic_write(self._path, text, mode=0o600)
