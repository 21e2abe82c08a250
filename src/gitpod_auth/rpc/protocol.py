"""JSON-RPC 2.0 framing for the Gitpod server WebSocket.

Each WebSocket text frame carries exactly one JSON-RPC message. Outgoing
calls use positional ``params``; incoming frames are classified by
:func:`parse_message` into requests, notifications and responses.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from gitpod_auth.exceptions import ChannelError, RPCError

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601


class MessageKind(str, enum.Enum):
    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"


@dataclass
class Message:
    """A decoded JSON-RPC frame.

    Only the fields relevant to :attr:`kind` are populated.
    """

    kind: MessageKind
    id: Optional[Union[int, str]] = None
    method: Optional[str] = None
    params: list[Any] = field(default_factory=list)
    result: Any = None
    error: Optional[RPCError] = None


def encode_request(request_id: int, method: str, params: list[Any]) -> str:
    return json.dumps(
        {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}
    )


def encode_error_response(
    request_id: Optional[Union[int, str]], code: int, message: str
) -> str:
    return json.dumps(
        {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id,
            "error": {"code": code, "message": message},
        }
    )


def parse_message(raw: Union[str, bytes]) -> Message:
    """Decode one frame.

    Args:
        raw: The frame payload as received from the socket.

    Returns:
        The classified :class:`Message`. A response carrying an ``error``
        object has :attr:`Message.error` set to an :class:`RPCError`.

    Raises:
        ChannelError: If the frame is not JSON or not a JSON-RPC object.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ChannelError(f"Received a frame that is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ChannelError("Received a JSON-RPC frame that is not an object")

    if "method" in data:
        params = data.get("params", [])
        if isinstance(params, dict):
            params = [params]
        kind = MessageKind.REQUEST if "id" in data else MessageKind.NOTIFICATION
        return Message(kind=kind, id=data.get("id"), method=data["method"], params=params)

    if "id" not in data:
        raise ChannelError("Received a JSON-RPC response without an id")

    error = None
    if data.get("error") is not None:
        err = data["error"]
        if isinstance(err, dict):
            error = RPCError(
                int(err.get("code", 0)), str(err.get("message", "")), err.get("data")
            )
        else:
            error = RPCError(0, str(err))
    return Message(
        kind=MessageKind.RESPONSE, id=data["id"], result=data.get("result"), error=error
    )
