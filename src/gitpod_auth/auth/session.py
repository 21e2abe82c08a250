"""Turn a bare access token into a complete :class:`~gitpod_auth.models.Session`."""

from __future__ import annotations

import logging
from typing import Sequence

from pydantic import ValidationError

from gitpod_auth.exceptions import ChannelError, IdentityLookupFailed
from gitpod_auth.models import Account, ProviderConfig, Session
from gitpod_auth.rpc.gitpod import ConnectionFactory, open_gitpod_connection

logger = logging.getLogger(__name__)


async def resolve_authentication_session(
    config: ProviderConfig,
    access_token: str,
    scopes: Sequence[str],
    connection_factory: ConnectionFactory = open_gitpod_connection,
) -> Session:
    """Return the session for *access_token*: the token itself, the scopes, the user's id and name.

    Opens a dedicated RPC connection, asks the server who the token belongs
    to, and closes the connection again whatever the outcome. The scopes are
    taken from the caller as-is; they are not re-read from the server.

    Args:
        config: Provider the token was issued by.
        access_token: Token used to authenticate the RPC connection.
        scopes: Scopes the session is recorded with.
        connection_factory: Opens the RPC connection (injectable for tests).

    Returns:
        The assembled session.

    Raises:
        IdentityLookupFailed: If the channel never connects, the call fails,
            or the server returns something that is not a user.
    """
    connection = connection_factory(config, access_token)
    try:
        user = await connection.server.get_logged_in_user()
    except (ChannelError, ValidationError) as exc:
        raise IdentityLookupFailed(f"Could not resolve the logged-in user: {exc}") from exc
    finally:
        await connection.close()

    logger.debug("Resolved Gitpod user %s", user.id)
    return Session(
        id=config.session_id,
        account=Account(label=user.name or user.id, id=user.id),
        scopes=list(scopes),
        access_token=access_token,
    )
