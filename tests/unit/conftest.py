"""Fakes shared by the connection manager tests.

Timers never touch an event loop: tests fire them explicitly, which keeps
the state machine tests synchronous and deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import pytest

from pushwire.connection_config import get_connection_config
from pushwire.connection_manager import ConnectionManager
from pushwire.events import EventsDispatcher
from pushwire.network import NetworkReachability
from pushwire.protocol import Handshake, HandshakeAction

UNAVAILABLE_TIMEOUT = 10.0
ACTIVITY_TIMEOUT = 120.0
PONG_TIMEOUT = 30.0
RETRY_DELAY = 1.0
FLUSH_INTERVAL = 60.0


class FakeTimer:
    def __init__(self, clock: "FakeClock", delay_seconds: float, callback: Callable[[], Any], periodic: bool = False):
        self.clock = clock
        self.delay_seconds = delay_seconds
        self.callback = callback
        self.periodic = periodic
        self.aborted = False
        self.fired = False
        self.abort_calls = 0

    def is_running(self) -> bool:
        return not self.aborted and not (self.fired and not self.periodic)

    def ensure_aborted(self) -> None:
        self.abort_calls += 1
        self.aborted = True

    def fire(self) -> None:
        assert self.is_running(), "timer is not running"
        self.fired = True
        self.callback()


class FakeClock:
    def __init__(self):
        self.timers: List[FakeTimer] = []
        self.periodic_timers: List[FakeTimer] = []

    def timer_factory(self, delay_seconds: float, callback: Callable[[], Any]) -> FakeTimer:
        timer = FakeTimer(self, delay_seconds, callback)
        self.timers.append(timer)
        return timer

    def periodic_timer_factory(self, interval_seconds: float, callback: Callable[[], Any]) -> FakeTimer:
        timer = FakeTimer(self, interval_seconds, callback, periodic=True)
        self.periodic_timers.append(timer)
        return timer

    def running(self, delay_seconds: Optional[float] = None) -> List[FakeTimer]:
        return [
            timer
            for timer in self.timers
            if timer.is_running() and (delay_seconds is None or timer.delay_seconds == delay_seconds)
        ]

    def running_periodic(self) -> List[FakeTimer]:
        return [timer for timer in self.periodic_timers if timer.is_running()]

    def fire(self, delay_seconds: float) -> None:
        pending = self.running(delay_seconds)
        assert len(pending) == 1, f"expected one running {delay_seconds}s timer, found {len(pending)}"
        pending[0].fire()


class FakeRunner:
    def __init__(self):
        self.abort_calls = 0

    def abort(self) -> None:
        self.abort_calls += 1


@dataclass
class StrategyCall:
    retry_count: int
    callback: Callable[[Optional[BaseException], Optional[Handshake]], None]
    runner: FakeRunner = field(default_factory=FakeRunner)


class FakeStrategy:
    def __init__(self, options, *, supported: bool = True, immediate: Optional[Handshake] = None):
        self.options = options
        self.supported = supported
        self.immediate = immediate
        self.calls: List[StrategyCall] = []

    def is_supported(self) -> bool:
        return self.supported

    def connect(self, retry_count, callback):
        call = StrategyCall(retry_count, callback)
        self.calls.append(call)
        if self.immediate is not None:
            callback(None, self.immediate)
        return call.runner

    def deliver(self, error: Optional[BaseException] = None, handshake: Optional[Handshake] = None) -> None:
        self.calls[-1].callback(error, handshake)


class FakeConnection(EventsDispatcher):
    def __init__(self, id: str = "42", *, supports_ping: bool = False, activity_timeout_seconds: Optional[float] = None):
        super().__init__()
        self.id = id
        self.activity_timeout_seconds = activity_timeout_seconds
        self._supports_ping = supports_ping
        self.sent: List[str] = []
        self.sent_events: List[tuple] = []
        self.close_calls = 0

    def supports_ping(self) -> bool:
        return self._supports_ping

    def send(self, data):
        self.sent.append(data)
        return True

    def send_event(self, name, data, channel=None):
        self.sent_events.append((name, data, channel))
        return True

    def close(self) -> None:
        self.close_calls += 1


class FakeTimelineSender:
    def __init__(self, timeline, options):
        self.timeline = timeline
        self.options = options
        self.send_calls = 0

    def send(self, callback=None):
        self.send_calls += 1
        if callback is not None:
            callback(None, {"status": 200})


class ManagerHarness:
    """A manager wired to fakes, plus a log of every event it emits."""

    def __init__(
        self,
        *,
        network=None,
        supported=True,
        immediate=None,
        with_timeline_sender=False,
        default_timeline_sender=False,
        **config_overrides,
    ):
        self.clock = FakeClock()
        self.network = network if network is not None else NetworkReachability()
        self.strategies: List[FakeStrategy] = []
        self.senders: List[FakeTimelineSender] = []
        self.events: List[tuple] = []
        overrides = {
            "unavailable_timeout_seconds": UNAVAILABLE_TIMEOUT,
            "activity_timeout_seconds": ACTIVITY_TIMEOUT,
            "pong_timeout_seconds": PONG_TIMEOUT,
            "retry_delay_seconds": RETRY_DELAY,
            "timeline_flush_interval_seconds": FLUSH_INTERVAL,
        }
        overrides.update(config_overrides)

        def strategy_factory(options):
            strategy = FakeStrategy(options, supported=supported, immediate=immediate)
            self.strategies.append(strategy)
            return strategy

        def sender_factory(timeline, options):
            sender = FakeTimelineSender(timeline, options)
            self.senders.append(sender)
            return sender

        manager_options = {
            "network": self.network,
            "config": get_connection_config(**overrides),
            "strategy_factory": strategy_factory,
            "timer_factory": self.clock.timer_factory,
            "periodic_timer_factory": self.clock.periodic_timer_factory,
        }
        # leaving the option out keeps the real sender factory
        if not default_timeline_sender:
            manager_options["timeline_sender_factory"] = sender_factory if with_timeline_sender else None
        self.manager = ConnectionManager("app-key", **manager_options)
        self.manager.bind_all(lambda name, data: self.events.append((name, data)))

    @property
    def strategy(self) -> FakeStrategy:
        return self.strategies[-1]

    def state_changes(self):
        return [(data["previous"].value, data["current"].value) for name, data in self.events if name == "state_change"]

    def event_names(self):
        return [name for name, _ in self.events]

    def connect_and_handshake(self, connection: Optional[FakeConnection] = None) -> FakeConnection:
        connection = connection if connection is not None else FakeConnection()
        self.manager.connect()
        self.strategy.deliver(None, Handshake(HandshakeAction.CONNECTED, connection=connection, id=connection.id))
        return connection


@pytest.fixture
def harness():
    return ManagerHarness()


@pytest.fixture
def make_harness():
    return ManagerHarness


@pytest.fixture
def make_connection():
    return FakeConnection
