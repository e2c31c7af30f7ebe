"""Wire codec and handshake interpretation for the pub/sub protocol.

Frames are JSON objects ``{"event": ..., "data": ..., "channel": ...}``.
The first frame after the transport opens is the handshake: either
``pusher:connection_established`` or ``pusher:error`` carrying a close code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

import orjson

from .exceptions import ProtocolError

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 7
CLIENT_NAME = "pushwire-python"
CLIENT_VERSION = "0.3.0"

EVENT_CONNECTION_ESTABLISHED = "pusher:connection_established"
EVENT_ERROR = "pusher:error"
EVENT_PING = "pusher:ping"
EVENT_PONG = "pusher:pong"

NORMAL_CLOSE_CODES = (1000, 1001)

RawFrame = Union[str, bytes, bytearray]


class HandshakeAction(Enum):
    """Outcome tags of a handshake, shared with close-code handling."""

    CONNECTED = "connected"
    SSL_ONLY = "ssl_only"
    REFUSED = "refused"
    BACKOFF = "backoff"
    RETRY = "retry"
    UNKNOWN = "unknown"


ERROR_ACTIONS = (
    HandshakeAction.SSL_ONLY,
    HandshakeAction.REFUSED,
    HandshakeAction.BACKOFF,
    HandshakeAction.RETRY,
)


@dataclass
class Handshake:
    """Result of negotiating a freshly opened transport."""

    action: HandshakeAction
    connection: Optional["Connection"] = None
    id: Optional[str] = None
    activity_timeout_seconds: Optional[float] = None
    error: Optional[Dict[str, Any]] = None


def encode_message(event: str, data: Any, channel: Optional[str] = None) -> str:
    message: Dict[str, Any] = {"event": event, "data": data}
    if channel:
        message["channel"] = channel
    return orjson.dumps(message).decode("utf-8")


def decode_message(raw: RawFrame) -> Dict[str, Any]:
    """Parse a frame; a string ``data`` field holding JSON is decoded as well."""
    try:
        message = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise ProtocolError("Unable to parse frame", frame=raw) from exc

    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        raise ProtocolError("Frame is not an event object", frame=raw)

    data = message.get("data")
    if isinstance(data, str):
        try:
            message["data"] = orjson.loads(data)
        except orjson.JSONDecodeError:  # policy_guard: allow-silent-handler
            # plain string payloads are valid
            pass
    return message


def get_close_action(code: Optional[int]) -> Optional[HandshakeAction]:
    """Map a close/error code to the recovery action, or None for ordinary closes."""
    if code is None:
        return HandshakeAction.UNKNOWN
    if code < 4000:
        if 1002 <= code <= 1004:
            return HandshakeAction.BACKOFF
        return None
    if code == 4000:
        return HandshakeAction.SSL_ONLY
    if code < 4100:
        return HandshakeAction.REFUSED
    if code < 4200:
        return HandshakeAction.BACKOFF
    if code < 4300:
        return HandshakeAction.RETRY
    return HandshakeAction.REFUSED


def get_close_error(data: Any) -> Optional[Dict[str, Any]]:
    code, reason = _code_and_reason(data)
    if code in NORMAL_CLOSE_CODES:
        return None
    return {"type": "PusherError", "data": {"code": code, "message": reason}}


def process_handshake(raw: RawFrame) -> Tuple[HandshakeAction, Dict[str, Any]]:
    """
    Interpret the first frame received on a new transport.

    Returns:
        The handshake action and its fields: ``id`` and
        ``activity_timeout_seconds`` for CONNECTED, ``error`` otherwise.

    Raises:
        ProtocolError: If the frame is not a handshake
    """
    message = decode_message(raw)
    event = message["event"]
    data = message.get("data")

    if event == EVENT_CONNECTION_ESTABLISHED:
        if not isinstance(data, dict) or not data.get("socket_id"):
            raise ProtocolError("Handshake is missing socket_id", frame=raw)
        activity_timeout = data.get("activity_timeout")
        if not activity_timeout:
            raise ProtocolError("No activity timeout specified in handshake", frame=raw)
        return HandshakeAction.CONNECTED, {
            "id": str(data["socket_id"]),
            "activity_timeout_seconds": float(activity_timeout),
        }

    if event == EVENT_ERROR:
        code, _ = _code_and_reason(data)
        action = get_close_action(code)
        if action is None:
            # an error frame with an ordinary close code still ends the handshake
            action = HandshakeAction.UNKNOWN
        logger.debug("Handshake rejected with code %s -> %s", code, action.value)
        return action, {"error": get_close_error(data)}

    raise ProtocolError(f"Invalid handshake event {event!r}", frame=raw)


def _code_and_reason(data: Any) -> Tuple[Optional[int], Optional[str]]:
    if not isinstance(data, dict):
        return None, None
    code = data.get("code")
    if code is not None:
        try:
            code = int(code)
        except (TypeError, ValueError):
            code = None
    reason = data.get("reason") or data.get("message")
    return code, reason
