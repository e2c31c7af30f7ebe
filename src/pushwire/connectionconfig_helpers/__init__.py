"""Helper modules for ConnectionConfig."""

from .config_loader import (
    optional_env_int,
    require_env_bool,
    require_env_int,
    require_env_seconds,
    require_env_str,
)

__all__ = [
    "optional_env_int",
    "require_env_bool",
    "require_env_int",
    "require_env_seconds",
    "require_env_str",
]
