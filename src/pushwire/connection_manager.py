"""
Connection manager for a persistent pub/sub transport.

Uses a strategy, timers and network reachability to establish one connection
and export its state. On failures it manages reconnection attempts.

State changes are exported as events:
- ``"state_change"`` with ``{"previous": ManagerState, "current": ManagerState}``
- the new state's value (``"connecting"``, ``"connected"``, ...) with optional data

Connection traffic is re-emitted as ``"message"``; transport and handshake
problems as ``"error"``. Nothing raises out of ``connect``/``disconnect``/``send``.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Callable, Dict, Optional

from .connection import Connection
from .connection_config import ConnectionConfig, get_connection_config
from .connection_state import ManagerState
from .events import EventsDispatcher
from .network import NetworkMonitor
from .protocol import EVENT_PING, EVENT_PONG, Handshake, HandshakeAction
from .strategy import ConnectionStrategy, StrategyOptions, StrategyRunner, default_strategy_factory
from .timeline import Timeline, TimelineSender, timeline_sender_factory
from .timers import PeriodicTimer, Timer, TimerFactory, TimerHandle, TimerSlot

StrategyFactory = Callable[[StrategyOptions], ConnectionStrategy]
TimelineSenderFactory = Callable[[Timeline, Dict[str, Any]], TimelineSender]


class ConnectionManager(EventsDispatcher):
    """
    Owns the lifecycle of one logical connection.

    States:
    - initialized: construction default, never transitioned to
    - connecting: an attempt is in flight
    - connected: the handshake succeeded and a Connection is held
    - disconnected: requested disconnection, or waiting to reconnect
    - unavailable: attempt timed out or the network is unreachable
    - failed: the strategy is not supported here

    Timing comes from ``ConnectionConfig``: ``unavailable_timeout_seconds``,
    ``activity_timeout_seconds``, ``pong_timeout_seconds`` and
    ``retry_delay_seconds``.

    Timeline reports go to ``stats_host`` through ``timeline_sender_factory``;
    pass ``None`` to disable them.
    """

    def __init__(
        self,
        key: str,
        *,
        network: NetworkMonitor,
        config: Optional[ConnectionConfig] = None,
        strategy_factory: Optional[StrategyFactory] = None,
        timeline: Optional[Timeline] = None,
        timeline_sender_factory: Optional[TimelineSenderFactory] = timeline_sender_factory,
        timer_factory: TimerFactory = Timer,
        periodic_timer_factory: TimerFactory = PeriodicTimer,
    ):
        super().__init__()
        self.key = key
        self.config = config if config is not None else get_connection_config()
        self.state = ManagerState.INITIALIZED
        self.connection: Optional[Connection] = None
        self.socket_id: Optional[str] = None
        self.encrypted = bool(self.config.encrypted)
        self.timeline = timeline if timeline is not None else Timeline(key, random.randint(1, 1_000_000_000))
        self.timeline_sender: Optional[TimelineSender] = None
        self.network = network
        self.logger = logging.getLogger(f"{__name__}.{key}")

        self._strategy_factory = strategy_factory or default_strategy_factory
        self._timeline_sender_factory = timeline_sender_factory
        self._periodic_timer_factory = periodic_timer_factory
        self._runner: Optional[StrategyRunner] = None
        self._retry_timer = TimerSlot("retry", timer_factory)
        self._unavailable_timer = TimerSlot("unavailable", timer_factory)
        self._activity_timer = TimerSlot("activity", timer_factory)
        self._timeline_flush: Optional[TimerHandle] = None
        self._shut_down = False

        self._connection_callbacks: Dict[str, Callable[[Any], None]] = self._build_connection_callbacks()

        self.network.bind("online", self._on_online)
        self.network.bind("offline", self._on_offline)

        self.update_strategy()

    def connect(self) -> None:
        """Establish a connection.

        Does nothing when a connection is held or an attempt is already in
        flight. See the class docstring for the events emitted on the way.
        """
        if self._shut_down:
            self.logger.warning("connect() called after shutdown")
            return
        if self.connection is not None or self.state is ManagerState.CONNECTING:
            return

        if not self.strategy.is_supported():
            self._abort_runner()
            self.update_state(ManagerState.FAILED)
            return
        if self.network.is_online() is False:
            # an attempt left over from the unavailable timeout cannot succeed offline
            self._abort_runner()
            self._unavailable_timer.cancel()
            self.update_state(ManagerState.UNAVAILABLE)
            return

        if self._runner is not None:
            # the attempt outlived the unavailable timeout and is still running
            self.update_state(ManagerState.CONNECTING)
            self._set_unavailable_timer()
            return

        self._retry_timer.cancel()
        self.update_state(ManagerState.CONNECTING)
        self.timeline_sender = self._build_timeline_sender()

        retry_count = 0
        settled = False

        def start(count: int) -> None:
            runner = self.strategy.connect(count, callback)
            # strategies may call back before returning their runner
            if settled or count != retry_count:
                runner.abort()
            else:
                self._runner = runner

        def callback(error: Optional[BaseException], handshake: Optional[Handshake]) -> None:
            nonlocal retry_count, settled
            if settled:
                return
            if error is not None:
                retry_count += 1
                cap = self.config.max_strategy_retries
                if cap is not None and retry_count > cap:
                    settled = True
                    self._runner = None
                    self.logger.warning("Strategy gave up after %d retries: %s", cap, error)
                    self.timeline.error({"strategy_retries_exhausted": cap})
                    self.emit("error", {"type": "StrategyRetriesExhausted", "error": error, "retries": cap})
                    self.retry_in(self.config.retry_delay_seconds)
                    return
                self.logger.debug("Connection attempt failed (%s); strategy retry %d", error, retry_count)
                start(retry_count)
                return

            settled = True
            # switching connections is not supported
            self._abort_runner()
            if handshake is not None:
                self._handle_handshake(handshake)

        self._set_unavailable_timer()
        start(0)

    def send(self, data: str) -> bool:
        """Send a raw frame; False when there is no connection."""
        if self.connection is None:
            return False
        return self.connection.send(data)

    def send_event(self, name: str, data: Any, channel: Optional[str] = None) -> bool:
        """Send an event; False when there is no connection."""
        if self.connection is None:
            return False
        return self.connection.send_event(name, data, channel)

    def disconnect(self) -> None:
        """Close the connection and stop every pending attempt and timer."""
        self._abort_runner()
        self._retry_timer.cancel()
        self._unavailable_timer.cancel()
        self._stop_activity_check()
        # callbacks are unbound first, so closing does not schedule a reconnect
        connection = self.connection
        if connection is not None:
            self._abandon_connection()
            connection.close()
        self.update_state(ManagerState.DISCONNECTED)

    def shutdown(self) -> None:
        """Disconnect and release the network subscription; the manager cannot reconnect afterwards."""
        self.disconnect()
        self.network.unbind("online", self._on_online)
        self.network.unbind("offline", self._on_offline)
        self._shut_down = True

    def update_strategy(self) -> None:
        self.strategy = self._strategy_factory(
            StrategyOptions(
                key=self.key,
                encrypted=self.encrypted,
                config=self.config,
                timeline=self.timeline,
            )
        )

    def retry_in(self, delay_seconds: float) -> None:
        self.logger.debug("Retrying in %.1fs", delay_seconds)
        self._retry_timer.arm(delay_seconds, self._retry)

    def update_state(self, new_state: ManagerState, data: Any = None) -> None:
        previous_state = self.state
        self.state = new_state
        # only emit when the state changes
        if previous_state is new_state:
            return
        self.logger.info("State changed: %s -> %s", previous_state.value, new_state.value)
        self.timeline.info({"state": new_state.value, "params": data})
        self.emit("state_change", {"previous": previous_state, "current": new_state})
        self.emit(new_state.value, data)

    def should_retry(self) -> bool:
        return self.state.is_active()

    @property
    def has_pending_retry(self) -> bool:
        return self._retry_timer.active

    def _retry(self) -> None:
        self.disconnect()
        self.connect()

    def _abort_runner(self) -> None:
        runner = self._runner
        self._runner = None
        if runner is not None:
            runner.abort()

    def _set_unavailable_timer(self) -> None:
        self._unavailable_timer.arm(self.config.unavailable_timeout_seconds, self._on_unavailable_timeout)

    def _on_unavailable_timeout(self) -> None:
        self.logger.warning("No connection after %.1fs", self.config.unavailable_timeout_seconds)
        self.update_state(ManagerState.UNAVAILABLE)

    def _handle_handshake(self, handshake: Handshake) -> None:
        match handshake.action:
            case HandshakeAction.CONNECTED:
                self._on_handshake_connected(handshake)
            case _:
                if handshake.error:
                    self.timeline.error({"handshake_error": handshake.error})
                self._handle_error_action(handshake.action, handshake.error)

    def _on_handshake_connected(self, handshake: Handshake) -> None:
        if handshake.connection is None:
            self.logger.error("Connected handshake without a connection")
            self.emit("error", {"type": "HandshakeError", "action": handshake.action.value, "error": None})
            return
        self._unavailable_timer.cancel()
        self._set_connection(handshake.connection)
        self.socket_id = handshake.connection.id
        self.update_state(ManagerState.CONNECTED, {"socket_id": self.socket_id})
        self._send_timeline()
        self._start_timeline_flush()

    def _handle_error_action(self, action: HandshakeAction, error: Any = None) -> None:
        match action:
            case HandshakeAction.SSL_ONLY:
                self.logger.info("Server requires an encrypted connection")
                self.encrypted = True
                self.update_strategy()
                self.retry_in(0)
            case HandshakeAction.REFUSED:
                self.logger.warning("Connection refused: %s", error)
                self.disconnect()
            case HandshakeAction.BACKOFF:
                self.retry_in(self.config.retry_delay_seconds)
            case HandshakeAction.RETRY:
                self.retry_in(0)
            case _:
                # stays connecting with no attempt running until the unavailable timer fires
                self.logger.warning("Ignoring unrecognized handshake action %r: %s", action, error)
                self.emit(
                    "error",
                    {"type": "HandshakeError", "action": getattr(action, "value", action), "error": error},
                )

    def _build_connection_callbacks(self) -> Dict[str, Callable[[Any], None]]:
        callbacks: Dict[str, Callable[[Any], None]] = {
            "message": self._on_connection_message,
            "ping": self._on_connection_ping,
            "ping_request": self._on_connection_ping_request,
            "error": self._on_connection_error,
            "closed": self._on_connection_closed,
        }
        for action in (HandshakeAction.SSL_ONLY, HandshakeAction.REFUSED, HandshakeAction.BACKOFF, HandshakeAction.RETRY):
            callbacks[action.value] = self._make_close_action_callback(action)
        return callbacks

    def _make_close_action_callback(self, action: HandshakeAction) -> Callable[[Any], None]:
        def callback(error: Any = None) -> None:
            self._handle_error_action(action, error)

        return callback

    def _on_connection_message(self, message: Any) -> None:
        # includes pong messages from the server
        self._reset_activity_check()
        self.emit("message", message)

    def _on_connection_ping(self, _data: Any = None) -> None:
        self.send_event(EVENT_PONG, {})

    def _on_connection_ping_request(self, _data: Any = None) -> None:
        self.send_event(EVENT_PING, {})

    def _on_connection_error(self, error: Any) -> None:
        # the transport closes itself on fatal errors; just report
        if isinstance(error, dict) and "type" in error:
            self.emit("error", error)
        else:
            self.emit("error", {"type": "WebSocketError", "error": error})

    def _on_connection_closed(self, data: Any = None) -> None:
        self._abandon_connection()
        if not self.should_retry():
            return
        self.update_state(ManagerState.DISCONNECTED, data)
        # a close action may already have scheduled its own retry
        if not self._retry_timer.active:
            self.retry_in(self.config.retry_delay_seconds)

    def _set_connection(self, connection: Connection) -> None:
        self.connection = connection
        for event_name, callback in self._connection_callbacks.items():
            connection.bind(event_name, callback)
        self._reset_activity_check()

    def _abandon_connection(self) -> None:
        connection = self.connection
        if connection is None:
            return
        for event_name, callback in self._connection_callbacks.items():
            connection.unbind(event_name, callback)
        self.connection = None
        self._stop_activity_check()
        self._stop_timeline_flush()

    def _activity_timeout_seconds(self) -> float:
        configured = self.config.activity_timeout_seconds
        negotiated = self.connection.activity_timeout_seconds if self.connection is not None else None
        if negotiated:
            return min(configured, negotiated)
        return configured

    def _reset_activity_check(self) -> None:
        self._stop_activity_check()
        connection = self.connection
        # send a ping after inactivity unless the transport pings natively
        if connection is None or connection.supports_ping():
            return
        self._activity_timer.arm(self._activity_timeout_seconds(), self._on_activity_timeout)

    def _stop_activity_check(self) -> None:
        self._activity_timer.cancel()

    def _on_activity_timeout(self) -> None:
        self.send_event(EVENT_PING, {})
        # wait for the pong
        self._activity_timer.arm(self.config.pong_timeout_seconds, self._on_pong_timeout)

    def _on_pong_timeout(self) -> None:
        connection = self.connection
        if connection is None:
            return
        self.logger.warning("No pong within %.1fs; closing connection", self.config.pong_timeout_seconds)
        connection.close()

    def _on_online(self, _data: Any = None) -> None:
        if self.state is ManagerState.UNAVAILABLE:
            self.connect()

    def _on_offline(self, _data: Any = None) -> None:
        if self.should_retry():
            self.disconnect()
            self.update_state(ManagerState.UNAVAILABLE)

    def _build_timeline_sender(self) -> Optional[TimelineSender]:
        if self._timeline_sender_factory is None:
            return None
        return self._timeline_sender_factory(self.timeline, {"encrypted": self.encrypted, "host": self.config.stats_host})

    def _send_timeline(self) -> None:
        if self.timeline_sender is not None:
            self.timeline_sender.send(self._on_timeline_sent)

    def _on_timeline_sent(self, error: Optional[BaseException], _result: Any = None) -> None:
        if error is not None:
            self.logger.debug("Timeline report not delivered: %s", error)

    def _start_timeline_flush(self) -> None:
        self._stop_timeline_flush()
        if self.timeline_sender is None:
            return
        self._timeline_flush = self._periodic_timer_factory(self.config.timeline_flush_interval_seconds, self._send_timeline)

    def _stop_timeline_flush(self) -> None:
        flush = self._timeline_flush
        self._timeline_flush = None
        if flush is not None:
            flush.ensure_aborted()
