"""Typed proxy for the slice of the Gitpod server API this package calls.

Only two remote functions are used, and a token must carry the matching
``function:<name>`` scopes for the server to accept them:

* ``getLoggedInUser`` -- the account behind the bearer token.
* ``getGitpodTokenScopes`` -- the scopes recorded for a token hash.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from pydantic import TypeAdapter

from gitpod_auth.models import ProviderConfig, User
from gitpod_auth.rpc.channel import ReconnectingChannel

USED_GITPOD_FUNCTIONS: tuple[str, ...] = ("getLoggedInUser", "getGitpodTokenScopes")
"""Remote functions called by this package, in the order they are requested as scopes."""

_SCOPE_LIST = TypeAdapter(list[str])


class GitpodServer:
    """Remote API of the Gitpod server, restricted to :data:`USED_GITPOD_FUNCTIONS`."""

    def __init__(self, channel: ReconnectingChannel) -> None:
        self._channel = channel

    async def get_logged_in_user(self) -> User:
        result = await self._channel.call("getLoggedInUser")
        return User.model_validate(result)

    async def get_gitpod_token_scopes(self, token_hash: str) -> list[str]:
        """Scopes recorded for *token_hash*.

        Raises:
            pydantic.ValidationError: If the server does not answer with a list of strings.
        """
        result = await self._channel.call("getGitpodTokenScopes", token_hash)
        return _SCOPE_LIST.validate_python(result)


@dataclass
class GitpodConnection:
    """A remote API proxy together with the channel it runs over.

    Close it once the call it was opened for has completed; each
    connection is meant for a single logical operation.
    """

    server: GitpodServer
    channel: ReconnectingChannel

    async def close(self) -> None:
        await self.channel.close()

    async def __aenter__(self) -> GitpodConnection:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


ConnectionFactory = Callable[[ProviderConfig, str], GitpodConnection]


def open_gitpod_connection(config: ProviderConfig, access_token: str) -> GitpodConnection:
    """Open an authenticated channel to ``config.rpc_url`` and wrap it in a proxy.

    Returns immediately; the socket is dialled in the background and calls
    wait for it. Must be called inside a running event loop.
    """
    channel = ReconnectingChannel(
        config.rpc_url,
        access_token,
        origin=config.base_url,
        rpc_config=config.rpc,
    ).open()
    return GitpodConnection(server=GitpodServer(channel), channel=channel)
