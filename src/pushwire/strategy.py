"""Connection strategies: how a transport is opened and handshaken."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine, Optional, Protocol
from urllib.parse import urlencode

import websockets
from websockets import WebSocketException

from .connection import Connection
from .connection_config import ConnectionConfig
from .exceptions import NetworkError, ProtocolError
from .protocol import (
    CLIENT_NAME,
    CLIENT_VERSION,
    PROTOCOL_VERSION,
    Handshake,
    HandshakeAction,
    process_handshake,
)

if TYPE_CHECKING:
    from .timeline import Timeline

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY_STEPS = 5
TRANSPORT_CLOSE_TIMEOUT_SECONDS = 5.0
MAX_FRAME_SIZE_BYTES = 1024 * 1024

StrategyCallback = Callable[[Optional[BaseException], Optional[Handshake]], None]
ConnectionFactory = Callable[[str], Awaitable[Any]]

TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)

STRATEGY_ERRORS = TRANSPORT_ERRORS + (NetworkError, ProtocolError)


@dataclass
class StrategyOptions:
    key: str
    encrypted: bool
    config: ConnectionConfig
    timeline: Optional["Timeline"] = None


class ConnectionStrategy(Protocol):
    """Pluggable algorithm that produces handshaken connections."""

    def is_supported(self) -> bool: ...

    def connect(self, retry_count: int, callback: StrategyCallback) -> "StrategyRunner": ...


class StrategyRunner:
    """
    Abortable handle for a single strategy attempt.

    The callback is delivered at most once and never after ``abort``.
    Aborting cancels the attempt task unless it already delivered, in which
    case the attempt is left to finish its own cleanup.
    """

    def __init__(
        self,
        attempt: Callable[["StrategyRunner"], Coroutine[Any, Any, None]],
        callback: StrategyCallback,
    ):
        self._callback: Optional[StrategyCallback] = callback
        self._aborted = False
        self._delivered = False
        self._task = asyncio.get_running_loop().create_task(attempt(self))

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def delivered(self) -> bool:
        return self._delivered

    def deliver(self, error: Optional[BaseException], handshake: Optional[Handshake]) -> bool:
        """Invoke the callback; returns False when the runner was aborted or already delivered."""
        callback = self._callback
        if self._aborted or self._delivered or callback is None:
            return False
        self._delivered = True
        self._callback = None
        callback(error, handshake)
        return True

    def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._callback = None
        if not self._delivered and not self._task.done():
            self._task.cancel()


def build_socket_url(options: StrategyOptions) -> str:
    config = options.config
    scheme = "wss" if options.encrypted else "ws"
    port = config.wss_port if options.encrypted else config.ws_port
    query = urlencode({"protocol": PROTOCOL_VERSION, "client": CLIENT_NAME, "version": CLIENT_VERSION})
    return f"{scheme}://{config.ws_host}:{port}/app/{options.key}?{query}"


class WebSocketStrategy:
    """Open a single WebSocket, read the handshake frame, report the outcome."""

    def __init__(self, options: StrategyOptions, connection_factory: Optional[ConnectionFactory] = None):
        self.options = options
        self.url = build_socket_url(options)
        self.connection_factory = connection_factory or self._default_connection_factory
        self.logger = logging.getLogger(f"{__name__}.{options.key}")

    def is_supported(self) -> bool:
        return bool(self.options.config.ws_host)

    def connect(self, retry_count: int, callback: StrategyCallback) -> StrategyRunner:
        return StrategyRunner(lambda runner: self._attempt(retry_count, runner), callback)

    def retry_delay_seconds(self, retry_count: int) -> float:
        return min(retry_count, MAX_RETRY_DELAY_STEPS) * self.options.config.strategy_retry_delay_seconds

    async def _default_connection_factory(self, url: str) -> Any:
        config = self.options.config
        if config.use_native_ping:
            ping_interval: Optional[float] = config.activity_timeout_seconds
            ping_timeout: Optional[float] = config.pong_timeout_seconds
        else:
            ping_interval = ping_timeout = None
        return await websockets.connect(
            url,
            ping_interval=ping_interval,
            ping_timeout=ping_timeout,
            close_timeout=10,
            max_size=MAX_FRAME_SIZE_BYTES,
        )

    async def _attempt(self, retry_count: int, runner: StrategyRunner) -> None:
        config = self.options.config
        transport = None
        handed_over = False
        try:
            delay = self.retry_delay_seconds(retry_count)
            if delay > 0:
                self.logger.debug("Strategy retry %d in %.1fs", retry_count, delay)
                await asyncio.sleep(delay)

            self._record("info", {"transport": "ws", "url": self.url, "retry": retry_count})
            try:
                transport = await asyncio.wait_for(self.connection_factory(self.url), timeout=config.connect_timeout_seconds)
            except TRANSPORT_ERRORS as exc:
                raise NetworkError(f"Unable to open {self.url}", url=self.url) from exc
            raw = await asyncio.wait_for(transport.recv(), timeout=config.connect_timeout_seconds)
            action, fields = process_handshake(raw)

            if action is HandshakeAction.CONNECTED:
                connection = Connection(
                    transport,
                    id=fields["id"],
                    activity_timeout_seconds=fields["activity_timeout_seconds"],
                    supports_ping=config.use_native_ping,
                )
                handed_over = True
                handshake = Handshake(
                    action,
                    connection=connection,
                    id=fields["id"],
                    activity_timeout_seconds=fields["activity_timeout_seconds"],
                )
            else:
                handshake = Handshake(action, error=fields.get("error"))

            self._record("info", {"handshake": action.value})
            if not runner.deliver(None, handshake) and handed_over:
                # aborted between the handshake and delivery
                handshake.connection.close()
        except STRATEGY_ERRORS as exc:
            self.logger.debug("Connection attempt failed: %r", exc)
            self._record("error", {"transport": "ws", "error": repr(exc)})
            runner.deliver(exc, None)
        finally:
            if transport is not None and not handed_over:
                await _close_quietly(transport)

    def _record(self, level: str, event: dict) -> None:
        timeline = self.options.timeline
        if timeline is not None:
            getattr(timeline, level)(event)


async def _close_quietly(transport: Any) -> None:
    try:
        await asyncio.wait_for(transport.close(), timeout=TRANSPORT_CLOSE_TIMEOUT_SECONDS)
    except (asyncio.TimeoutError, WebSocketException, OSError):  # policy_guard: allow-silent-handler
        logger.warning("Error closing unused transport")


def default_strategy_factory(options: StrategyOptions) -> ConnectionStrategy:
    return WebSocketStrategy(options)
