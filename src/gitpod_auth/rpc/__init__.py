"""Authenticated JSON-RPC access to the Gitpod server.

* :class:`ReconnectingChannel` -- the bearer-authenticated WebSocket with
  bounded reconnects.
* :class:`GitpodServer` -- typed proxy for ``getLoggedInUser`` and
  ``getGitpodTokenScopes``.
* :func:`open_gitpod_connection` -- builds both from a
  :class:`~gitpod_auth.models.ProviderConfig`.
"""

from gitpod_auth.rpc.channel import ReconnectingChannel
from gitpod_auth.rpc.gitpod import (
    USED_GITPOD_FUNCTIONS,
    ConnectionFactory,
    GitpodConnection,
    GitpodServer,
    open_gitpod_connection,
)

__all__ = [
    "ConnectionFactory",
    "GitpodConnection",
    "GitpodServer",
    "ReconnectingChannel",
    "USED_GITPOD_FUNCTIONS",
    "open_gitpod_connection",
]
