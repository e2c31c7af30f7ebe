"""Environment loading helpers for ConnectionConfig.

Every setting has a built-in default so a bare environment still yields a
usable configuration; environment variables (or a ``.env`` file) override it.
"""

import logging
from typing import Optional

from ..config import env_bool, env_int, env_seconds, env_str
from ..config.errors import ConfigurationError

logger = logging.getLogger(__name__)

_DEFAULT_STR_VALUES = {
    "PUSHWIRE_WS_HOST": "ws.pushwire.io",
    "PUSHWIRE_STATS_HOST": "stats.pushwire.io",
}

_DEFAULT_INT_VALUES = {
    "PUSHWIRE_WS_PORT": 80,
    "PUSHWIRE_WSS_PORT": 443,
}

_DEFAULT_SECONDS_VALUES = {
    "PUSHWIRE_CONNECT_TIMEOUT_SECONDS": 10.0,
    "PUSHWIRE_UNAVAILABLE_TIMEOUT_SECONDS": 10.0,
    "PUSHWIRE_ACTIVITY_TIMEOUT_SECONDS": 120.0,
    "PUSHWIRE_PONG_TIMEOUT_SECONDS": 30.0,
    "PUSHWIRE_RETRY_DELAY_SECONDS": 1.0,
    "PUSHWIRE_STRATEGY_RETRY_DELAY_SECONDS": 1.0,
    "PUSHWIRE_TIMELINE_FLUSH_INTERVAL_SECONDS": 60.0,
}

_DEFAULT_BOOL_VALUES = {
    "PUSHWIRE_ENCRYPTED": False,
    "PUSHWIRE_USE_NATIVE_PING": False,
}


def require_env_str(name: str) -> str:
    """Get an environment variable as string, using default if available."""
    value = env_str(name, or_value=None, required=False)
    if value is not None:
        return value
    if name in _DEFAULT_STR_VALUES:
        return _DEFAULT_STR_VALUES[name]
    raise ConfigurationError(f"Environment variable {name} must be defined")


def require_env_int(name: str) -> int:
    """Get an environment variable as integer, using default if available."""
    value = env_int(name, or_value=None, required=False)
    if value is not None:
        return value
    if name in _DEFAULT_INT_VALUES:
        return _DEFAULT_INT_VALUES[name]
    raise ConfigurationError(f"Environment variable {name} must be defined")


def require_env_seconds(name: str) -> float:
    """Get a non-negative duration in seconds, using default if available."""
    value = env_seconds(name, or_value=None, required=False)
    if value is not None:
        return value
    if name in _DEFAULT_SECONDS_VALUES:
        return _DEFAULT_SECONDS_VALUES[name]
    raise ConfigurationError(f"Environment variable {name} must be defined")


def require_env_bool(name: str) -> bool:
    """Get an environment variable as bool, using default if available."""
    value = env_bool(name, or_value=None, required=False)
    if value is not None:
        return value
    if name in _DEFAULT_BOOL_VALUES:
        return _DEFAULT_BOOL_VALUES[name]
    raise ConfigurationError(f"Environment variable {name} must be defined")


def optional_env_int(name: str) -> Optional[int]:
    """Get an environment variable as integer, or None when unset."""
    value = env_int(name, or_value=None, required=False)
    if value is None:
        logger.debug("%s not set; leaving unbounded", name)
    return value
