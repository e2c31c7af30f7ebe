"""Manager, strategy and connection running together on a real event loop."""

import asyncio

import orjson
import pytest

from pushwire.connection_config import get_connection_config
from pushwire.connection_manager import ConnectionManager
from pushwire.connection_state import ManagerState
from pushwire.network import NetworkReachability
from pushwire.strategy import WebSocketStrategy


class DummyTransport:
    def __init__(self, socket_id):
        self.incoming: asyncio.Queue = asyncio.Queue()
        data = orjson.dumps({"socket_id": socket_id, "activity_timeout": 120}).decode()
        self.incoming.put_nowait(orjson.dumps({"event": "pusher:connection_established", "data": data}).decode())
        self.sent = []
        self.close_code = None
        self.close_reason = None
        self.close_calls = 0

    def drop(self, code, reason=""):
        self.close_code = code
        self.close_reason = reason
        self.incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def recv(self):
        return await self.incoming.get()

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        self.close_calls += 1
        if self.close_code is None:
            self.close_code = 1000
        self.incoming.put_nowait(None)


async def drain_loop(iterations: int = 20) -> None:
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_connect_backoff_close_and_reconnect():
    transports = [DummyTransport("1.1"), DummyTransport("2.2")]
    opened = []

    async def connection_factory(url):
        transport = transports[len(opened)]
        opened.append(url)
        return transport

    manager = ConnectionManager(
        "app-key",
        network=NetworkReachability(),
        config=get_connection_config(strategy_retry_delay_seconds=0, connect_timeout_seconds=1, retry_delay_seconds=0.01),
        strategy_factory=lambda options: WebSocketStrategy(options, connection_factory=connection_factory),
        timeline_sender_factory=None,
    )
    states = []
    manager.bind("state_change", lambda change: states.append(change["current"]))

    manager.connect()
    await drain_loop()

    assert manager.state is ManagerState.CONNECTED
    assert manager.socket_id == "1.1"
    assert manager.send_event("client-hello", {"n": 1}) is True
    await drain_loop()
    assert orjson.loads(transports[0].sent[0]) == {"event": "client-hello", "data": {"n": 1}}

    transports[0].drop(4100, "Over capacity")
    await drain_loop()

    assert manager.state is ManagerState.DISCONNECTED
    assert manager.connection is None
    assert manager.has_pending_retry is True

    await asyncio.sleep(0.05)
    await drain_loop()

    assert manager.state is ManagerState.CONNECTED
    assert manager.socket_id == "2.2"
    assert len(opened) == 2

    manager.disconnect()
    await drain_loop()

    assert transports[1].close_calls == 1
    assert states == [
        ManagerState.CONNECTING,
        ManagerState.CONNECTED,
        ManagerState.DISCONNECTED,
        ManagerState.CONNECTING,
        ManagerState.CONNECTED,
        ManagerState.DISCONNECTED,
    ]
