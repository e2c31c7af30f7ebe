"""Client-side connection manager for a persistent pub/sub WebSocket transport."""

from .connection import Connection
from .connection_config import ConnectionConfig, get_connection_config
from .connection_manager import ConnectionManager
from .connection_state import ManagerState
from .events import EventsDispatcher
from .exceptions import ApplicationError, ConfigurationError, NetworkError, ProtocolError
from .logging_config import setup_logging
from .network import NetworkMonitor, NetworkReachability, ReachabilityProbe
from .protocol import CLIENT_VERSION as __version__
from .protocol import Handshake, HandshakeAction
from .strategy import ConnectionStrategy, StrategyOptions, StrategyRunner, WebSocketStrategy
from .timeline import Timeline, TimelineSender, timeline_sender_factory
from .timers import PeriodicTimer, Timer, TimerSlot

__all__ = [
    "__version__",
    "ApplicationError",
    "ConfigurationError",
    "Connection",
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionStrategy",
    "EventsDispatcher",
    "get_connection_config",
    "Handshake",
    "HandshakeAction",
    "ManagerState",
    "NetworkError",
    "NetworkMonitor",
    "NetworkReachability",
    "PeriodicTimer",
    "ProtocolError",
    "ReachabilityProbe",
    "setup_logging",
    "StrategyOptions",
    "StrategyRunner",
    "Timeline",
    "TimelineSender",
    "timeline_sender_factory",
    "Timer",
    "TimerSlot",
    "WebSocketStrategy",
]
