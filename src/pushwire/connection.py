"""Established, handshaken transport connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from websockets import ConnectionClosed, WebSocketException

from .events import EventsDispatcher
from .exceptions import ProtocolError
from .protocol import (
    ERROR_ACTIONS,
    EVENT_ERROR,
    EVENT_PING,
    EVENT_PONG,
    RawFrame,
    decode_message,
    encode_message,
    get_close_action,
    get_close_error,
)

TRANSPORT_CLOSE_TIMEOUT_SECONDS = 5.0


class Connection(EventsDispatcher):
    """
    Wraps an open ``websockets`` client connection that passed the handshake.

    Emits ``message`` for every decoded frame, then ``error``/``ping``/``pong``
    for the matching protocol events. When the transport goes away it emits
    the close action (``ssl_only``, ``refused``, ``backoff``, ``retry``) derived
    from the close code, if any, and finally ``closed`` exactly once.
    """

    def __init__(
        self,
        transport: Any,
        *,
        id: str,
        activity_timeout_seconds: Optional[float] = None,
        supports_ping: bool = False,
    ):
        super().__init__()
        self.id = id
        self.transport = transport
        self.activity_timeout_seconds = activity_timeout_seconds
        self._supports_ping = supports_ping
        self._outbox: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._closing = False
        self._closed = False
        self.logger = logging.getLogger(f"{__name__}.{id}")

        loop = asyncio.get_running_loop()
        self._reader_task = loop.create_task(self._read_loop())
        self._writer_task = loop.create_task(self._write_loop())
        self._close_task: Optional[asyncio.Task[None]] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def supports_ping(self) -> bool:
        return self._supports_ping

    def send(self, data: str) -> bool:
        if self._closing or self._closed:
            self.logger.debug("Dropping frame on closed connection")
            return False
        self._outbox.put_nowait(data)
        return True

    def send_event(self, name: str, data: Any, channel: Optional[str] = None) -> bool:
        self.logger.debug("Event sent: %s%s", name, f" on {channel}" if channel else "")
        return self.send(encode_message(name, data, channel))

    def close(self) -> None:
        if self._closing or self._closed:
            return
        self._closing = True
        self._outbox.put_nowait(None)
        self._close_task = asyncio.get_running_loop().create_task(self._close_transport())

    async def _read_loop(self) -> None:
        try:
            async for raw in self.transport:
                self._handle_frame(raw)
        except ConnectionClosed:  # policy_guard: allow-silent-handler
            # close code is read from the transport below
            pass
        except (WebSocketException, OSError) as exc:
            self.logger.warning("Transport read failed: %s", exc)
            self.emit("error", {"type": "WebSocketError", "error": exc})
        finally:
            self._handle_transport_closed()

    async def _write_loop(self) -> None:
        while True:
            data = await self._outbox.get()
            if data is None:
                return
            try:
                await self.transport.send(data)
            except ConnectionClosed:  # policy_guard: allow-silent-handler
                # the reader observes the same closure and reports it
                return
            except (WebSocketException, OSError) as exc:
                self.logger.warning("Transport write failed: %s", exc)
                self.emit("error", {"type": "WebSocketError", "error": exc})
                self.close()
                return

    async def _close_transport(self) -> None:
        try:
            await asyncio.wait_for(self.transport.close(), timeout=TRANSPORT_CLOSE_TIMEOUT_SECONDS)
        except (asyncio.TimeoutError, WebSocketException, OSError):  # policy_guard: allow-silent-handler
            self.logger.warning("Error closing transport")
        finally:
            if not self._closed:
                self._reader_task.cancel()

    def _handle_frame(self, raw: RawFrame) -> None:
        try:
            message = decode_message(raw)
        except ProtocolError as exc:
            self.logger.debug("Undecodable frame: %r", raw)
            self.emit("error", {"type": "MessageParseError", "error": exc, "data": raw})
            return

        self.emit("message", message)
        event = message["event"]
        if event == EVENT_ERROR:
            self.emit("error", {"type": "PusherError", "data": message.get("data")})
        elif event == EVENT_PING:
            self.emit("ping", message.get("data"))
        elif event == EVENT_PONG:
            self.emit("pong", message.get("data"))

    def _handle_transport_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closing = True
        self._outbox.put_nowait(None)

        code = getattr(self.transport, "close_code", None)
        reason = getattr(self.transport, "close_reason", None)
        self.logger.debug("Transport closed (code: %s)", code)

        if code is not None:
            action = get_close_action(code)
            if action in ERROR_ACTIONS:
                self.emit(action.value, get_close_error({"code": code, "reason": reason}))
        self.emit("closed", {"code": code, "reason": reason})
