"""Reconnecting, bearer-authenticated JSON-RPC channel over a WebSocket.

:class:`ReconnectingChannel` owns at most one live socket at a time. When
the socket drops, or cannot be opened, it dials again with exponential
backoff until the retry budget in :class:`~gitpod_auth.models.RPCConfig`
is spent. Calls made while no socket is live are held and sent as soon as
one is; calls in flight when a socket drops are re-sent on the next one.
The remote methods this package uses are read-only, so a repeated call is
harmless.

The access token travels once per connection, in the handshake
``Authorization`` header, never inside a message body.

Example::

    channel = ReconnectingChannel("wss://gitpod.io", token, origin="https://gitpod.io")
    channel.open()
    try:
        user = await channel.call("getLoggedInUser")
    finally:
        await channel.close()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from gitpod_auth.exceptions import ChannelError
from gitpod_auth.models import RPCConfig
from gitpod_auth.rpc.protocol import (
    METHOD_NOT_FOUND,
    Message,
    MessageKind,
    encode_error_response,
    encode_request,
    parse_message,
)

logger = logging.getLogger(__name__)


def _call_id(value: Any) -> Any:
    """Map a response id back to our integer ids; some servers echo them as strings."""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


@dataclass
class _PendingCall:
    frame: str
    future: asyncio.Future
    sent_on: Optional[ClientConnection] = None


class ReconnectingChannel:
    """A JSON-RPC client that survives transient connection loss.

    Args:
        url: WebSocket URL of the server (``wss://...``).
        access_token: Bearer token sent in the handshake.
        origin: Value for the handshake ``Origin`` header.
        rpc_config: Reconnection policy; defaults to :class:`RPCConfig`.
    """

    def __init__(
        self,
        url: str,
        access_token: str,
        origin: Optional[str] = None,
        rpc_config: Optional[RPCConfig] = None,
    ) -> None:
        self._url = url
        self._access_token = access_token
        self._origin = origin
        self._config = rpc_config or RPCConfig()
        self._pending: dict[int, _PendingCall] = {}
        self._next_id = 0
        self._socket: Optional[ClientConnection] = None
        self._connection: Optional[asyncio.Future] = None
        self._runner: Optional[asyncio.Task] = None
        self._failure: Optional[ChannelError] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def connection(self) -> asyncio.Future:
        """Future resolving with the first live socket.

        Rejects with :class:`ChannelError` if the retry budget runs out, or
        the channel is closed, before any connection succeeds.
        """
        if self._connection is None:
            raise ChannelError("Channel has not been opened")
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> ReconnectingChannel:
        """Start dialling in the background. Must be called inside a running loop."""
        if self._runner is not None:
            return self
        self._connection = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(self._run())
        return self

    async def close(self) -> None:
        """Stop reconnecting and close the live socket, if any.

        Idempotent. Errors raised while closing the socket are logged and
        never propagated. Calls still waiting for an answer fail with
        :class:`ChannelError`.
        """
        if self._closed:
            return
        self._closed = True
        socket = self._socket
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            await asyncio.wait([self._runner])
        if socket is not None:
            try:
                await socket.close()
            except Exception as exc:
                logger.debug("Ignoring error while closing %s: %s", self._url, exc)
        self._socket = None
        self._fail_all(ChannelError(f"Channel to {self._url} was closed"))
        logger.debug("Closed channel to %s", self._url)

    async def __aenter__(self) -> ReconnectingChannel:
        return self.open()

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def call(self, method: str, *params: Any) -> Any:
        """Invoke *method* remotely and return its ``result``.

        Raises:
            RPCError: If the server answers with an error object.
            ChannelError: If the channel is closed, was never opened, or
                gave up reconnecting before an answer arrived.
        """
        if self._closed:
            raise ChannelError(f"Channel to {self._url} is closed")
        if self._failure is not None:
            raise self._failure
        if self._connection is None:
            raise ChannelError("Channel has not been opened")

        self._next_id += 1
        request_id = self._next_id
        pending = _PendingCall(
            frame=encode_request(request_id, method, list(params)),
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[request_id] = pending
        try:
            socket = self._socket
            if socket is not None:
                await self._send(socket, pending)
            return await pending.future
        finally:
            self._pending.pop(request_id, None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _handshake_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    def _delay(self, attempt: int) -> float:
        """Backoff before retry number *attempt* (1-based)."""
        cfg = self._config
        delay = cfg.min_reconnection_delay * (
            cfg.reconnection_delay_grow_factor ** max(attempt - 1, 0)
        )
        return min(delay, cfg.max_reconnection_delay)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        failures = 0
        while not self._closed:
            try:
                socket = await connect(
                    self._url,
                    origin=self._origin,  # type: ignore[arg-type]
                    additional_headers=self._handshake_headers(),
                    open_timeout=self._config.connection_timeout,
                )
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                failures += 1
                logger.debug(
                    "Connection attempt %d to %s failed: %s", failures, self._url, exc
                )
                if failures > self._config.max_retries:
                    self._give_up(
                        ChannelError(
                            f"Could not connect to {self._url} after "
                            f"{failures} attempts: {exc}"
                        )
                    )
                    return
                await asyncio.sleep(self._delay(failures))
                continue

            logger.debug("Connected to %s", self._url)
            connected_at = loop.time()
            self._socket = socket
            assert self._connection is not None
            if not self._connection.done():
                self._connection.set_result(socket)
            try:
                for pending in list(self._pending.values()):
                    if pending.sent_on is not socket:
                        await self._send(socket, pending)
                await self._receive(socket)
            finally:
                self._socket = None

            if self._closed:
                return
            # Only a connection that stayed up for min_uptime clears the retry count.
            if loop.time() - connected_at >= self._config.min_uptime:
                failures = 0
            failures += 1
            if failures > self._config.max_retries:
                self._give_up(
                    ChannelError(
                        f"Connection to {self._url} dropped {failures} times "
                        f"in a row; giving up"
                    )
                )
                return
            logger.debug("Connection to %s lost, reconnect attempt %d", self._url, failures)
            await asyncio.sleep(self._delay(failures))

    async def _send(self, socket: ClientConnection, pending: _PendingCall) -> None:
        pending.sent_on = socket
        try:
            await socket.send(pending.frame)
        except ConnectionClosed:
            # Re-sent once the next socket is up.
            pending.sent_on = None

    async def _receive(self, socket: ClientConnection) -> None:
        try:
            async for raw in socket:
                try:
                    message = parse_message(raw)
                except ChannelError as exc:
                    logger.warning("Ignoring frame from %s: %s", self._url, exc)
                    continue
                await self._dispatch(socket, message)
        except ConnectionClosed as exc:
            logger.debug("Socket to %s closed: %s", self._url, exc)

    async def _dispatch(self, socket: ClientConnection, message: Message) -> None:
        if message.kind is MessageKind.RESPONSE:
            if message.id is None and message.error is not None:
                # Parse and invalid-request errors carry no id; any in-flight call may be the cause.
                logger.warning("Server rejected a request without naming it: %s", message.error)
                self._fail_in_flight(socket, message.error)
                return
            pending = self._pending.get(_call_id(message.id))
            if pending is None or pending.future.done():
                logger.warning("Dropping response for unknown call id %r", message.id)
                return
            if message.error is not None:
                pending.future.set_exception(message.error)
            else:
                pending.future.set_result(message.result)
        elif message.kind is MessageKind.REQUEST:
            logger.debug("Rejecting server request %s", message.method)
            try:
                await socket.send(
                    encode_error_response(
                        message.id, METHOD_NOT_FOUND, f"Unhandled method {message.method}"
                    )
                )
            except ConnectionClosed:
                pass
        else:
            logger.debug("Ignoring server notification %s", message.method)

    def _fail_in_flight(self, socket: ClientConnection, error: Exception) -> None:
        for pending in list(self._pending.values()):
            if pending.sent_on is socket and not pending.future.done():
                pending.future.set_exception(error)

    def _give_up(self, error: ChannelError) -> None:
        logger.debug("Giving up on %s: %s", self._url, error)
        self._failure = error
        if self._connection is not None and not self._connection.done():
            self._connection.set_exception(error)
            # Observed here so an unawaited connection future does not warn.
            self._connection.exception()
        self._fail_all(error)

    def _fail_all(self, error: ChannelError) -> None:
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_exception(error)
        if self._connection is not None and not self._connection.done():
            self._connection.set_exception(error)
            self._connection.exception()
