"""Scope checks, local and remote.

:func:`has_scopes` is a plain membership test against a stored session.
:func:`check_scopes` asks the server which scopes a raw token carries; the
server indexes tokens by their SHA-256 hash, so only the hash is sent.
"""

from __future__ import annotations

import hashlib
from typing import Optional, Sequence

from pydantic import ValidationError

from gitpod_auth.exceptions import ChannelError, IdentityLookupFailed
from gitpod_auth.models import ProviderConfig, Session
from gitpod_auth.rpc.gitpod import (
    USED_GITPOD_FUNCTIONS,
    ConnectionFactory,
    open_gitpod_connection,
)


def has_scopes(session: Session, scopes: Optional[Sequence[str]] = None) -> bool:
    """Check whether *session* includes every scope in *scopes*.

    Literal string membership only; there is no hierarchy or wildcard
    matching. An empty or missing *scopes* is always satisfied.
    """
    return not scopes or all(scope in session.scopes for scope in scopes)


def hash_token(access_token: str) -> str:
    """Hex-encoded SHA-256 of the UTF-8 token, as stored by the server."""
    return hashlib.sha256(access_token.encode("utf-8")).hexdigest()


def login_scopes(config: ProviderConfig, extra: Optional[Sequence[str]] = None) -> list[str]:
    """Scopes requested by a login.

    The configured scopes, then any *extra* scopes the caller asked for,
    then one ``function:<name>`` scope per remote function this package
    calls. Order-preserving and free of duplicates.
    """
    requested = list(config.scopes) + list(extra or [])
    requested += [f"function:{name}" for name in USED_GITPOD_FUNCTIONS]
    return list(dict.fromkeys(requested))


async def check_scopes(
    config: ProviderConfig,
    access_token: str,
    connection_factory: ConnectionFactory = open_gitpod_connection,
) -> list[str]:
    """Return all of the scopes accessible for *access_token*.

    Raises:
        IdentityLookupFailed: If the channel never connects, the call fails, or
            the server answers with something other than a list of scopes.
    """
    connection = connection_factory(config, access_token)
    try:
        return await connection.server.get_gitpod_token_scopes(hash_token(access_token))
    except (ChannelError, ValidationError) as exc:
        raise IdentityLookupFailed(f"Could not look up token scopes: {exc}") from exc
    finally:
        await connection.close()
