"""
Configuration for the pub/sub connection manager.

Timeouts and intervals are in seconds. Values come from environment
variables (``PUSHWIRE_*``) with built-in defaults, and can be overridden per
manager through ``get_connection_config``.
"""

from dataclasses import dataclass, field, fields
from functools import partial
from typing import Any, Optional

from .config.errors import ConfigurationError
from .connectionconfig_helpers import (
    optional_env_int,
    require_env_bool,
    require_env_int,
    require_env_seconds,
    require_env_str,
)

_POSITIVE_FIELDS = (
    "connect_timeout_seconds",
    "unavailable_timeout_seconds",
    "activity_timeout_seconds",
    "pong_timeout_seconds",
    "timeline_flush_interval_seconds",
)

_NON_NEGATIVE_FIELDS = (
    "retry_delay_seconds",
    "strategy_retry_delay_seconds",
)


@dataclass
class ConnectionConfig:
    """
    Settings shared by the connection manager and its default collaborators.

    Attributes:
        ws_host: Host serving the WebSocket endpoint
        ws_port: Port for unencrypted connections
        wss_port: Port for encrypted connections
        encrypted: Start in encrypted mode (the server can also force it)
        connect_timeout_seconds: Bound on opening the transport plus the handshake
        unavailable_timeout_seconds: Time in ``connecting`` before moving to ``unavailable``
        activity_timeout_seconds: Idle time after which a ping is sent
        pong_timeout_seconds: Time to wait for any message after a ping
        retry_delay_seconds: Delay for manager-level retries after close or backoff
        strategy_retry_delay_seconds: Per-attempt delay step inside the strategy
        max_strategy_retries: Cap on strategy-internal retries per attempt (None = unbounded)
        timeline_flush_interval_seconds: Period of the timeline flush while connected
        stats_host: Host receiving timeline reports
        use_native_ping: Let the transport run protocol-level pings instead of the activity check
    """

    ws_host: str = field(default_factory=partial(require_env_str, "PUSHWIRE_WS_HOST"))
    ws_port: int = field(default_factory=partial(require_env_int, "PUSHWIRE_WS_PORT"))
    wss_port: int = field(default_factory=partial(require_env_int, "PUSHWIRE_WSS_PORT"))
    encrypted: bool = field(default_factory=partial(require_env_bool, "PUSHWIRE_ENCRYPTED"))

    connect_timeout_seconds: float = field(
        default_factory=partial(require_env_seconds, "PUSHWIRE_CONNECT_TIMEOUT_SECONDS")
    )
    unavailable_timeout_seconds: float = field(
        default_factory=partial(require_env_seconds, "PUSHWIRE_UNAVAILABLE_TIMEOUT_SECONDS")
    )

    # Heartbeat
    activity_timeout_seconds: float = field(
        default_factory=partial(require_env_seconds, "PUSHWIRE_ACTIVITY_TIMEOUT_SECONDS")
    )
    pong_timeout_seconds: float = field(
        default_factory=partial(require_env_seconds, "PUSHWIRE_PONG_TIMEOUT_SECONDS")
    )
    use_native_ping: bool = field(default_factory=partial(require_env_bool, "PUSHWIRE_USE_NATIVE_PING"))

    # Retries
    retry_delay_seconds: float = field(default_factory=partial(require_env_seconds, "PUSHWIRE_RETRY_DELAY_SECONDS"))
    strategy_retry_delay_seconds: float = field(
        default_factory=partial(require_env_seconds, "PUSHWIRE_STRATEGY_RETRY_DELAY_SECONDS")
    )
    max_strategy_retries: Optional[int] = field(
        default_factory=partial(optional_env_int, "PUSHWIRE_MAX_STRATEGY_RETRIES")
    )

    # Timeline reporting
    timeline_flush_interval_seconds: float = field(
        default_factory=partial(require_env_seconds, "PUSHWIRE_TIMELINE_FLUSH_INTERVAL_SECONDS")
    )
    stats_host: str = field(default_factory=partial(require_env_str, "PUSHWIRE_STATS_HOST"))

    def validate(self) -> None:
        """Reject timeouts that would make the state machine spin or stall."""
        for name in _POSITIVE_FIELDS:
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError.invalid_value(name, value, "Must be positive")
        for name in _NON_NEGATIVE_FIELDS:
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError.invalid_value(name, value, "Must be non-negative")
        if self.max_strategy_retries is not None and self.max_strategy_retries < 0:
            raise ConfigurationError.invalid_value("max_strategy_retries", self.max_strategy_retries, "Must be non-negative")


def get_connection_config(**overrides: Any) -> ConnectionConfig:
    """
    Factory function to build a validated connection configuration.

    Args:
        **overrides: Field values that take precedence over the environment

    Returns:
        ConnectionConfig instance with overrides applied

    Raises:
        ConfigurationError: If an override names no field or a value is out of range
    """
    known = {config_field.name for config_field in fields(ConnectionConfig)}
    for key in overrides:
        if key not in known:
            raise ConfigurationError.unknown_option(key)

    config = ConnectionConfig(**overrides)
    config.validate()
    return config
