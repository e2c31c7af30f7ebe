"""
Canonical connection manager states.

The enum values double as the names of the per-state events the manager
emits, so subscribers can bind to ``"connected"`` or ``ManagerState.CONNECTED.value``.
"""

from enum import Enum


class ManagerState(Enum):
    """
    Lifecycle states of a connection manager.

    ``INITIALIZED`` is only the construction-time default; the manager never
    transitions back into it.
    """

    INITIALIZED = "initialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"

    def is_active(self) -> bool:
        """Return True while the manager should keep (re)trying to be connected."""
        return self in (ManagerState.CONNECTING, ManagerState.CONNECTED)
