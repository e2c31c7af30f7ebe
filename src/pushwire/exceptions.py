"""Common exception classes for pushwire.

All custom exceptions inherit from ``ApplicationError`` so callers can catch
the whole family in one place.

Exception classes support two patterns:
1. No-argument raise: raise ProtocolError()
2. Contextual attributes: err = ProtocolError(frame=raw); raise err
"""

from typing import Any


class ApplicationError(Exception):
    """Base exception for all pushwire errors.

    Supports keyword arguments that are stored as attributes for debugging.
    """

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = self.__class__.__doc__ or "Application error occurred"
        super().__init__(message)
        for key, value in kwargs.items():
            setattr(self, key, value)


class NetworkError(ApplicationError):
    """Network communication error."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Network communication error"
        super().__init__(message, **kwargs)


class ProtocolError(ApplicationError):
    """Frame or handshake did not follow the wire protocol."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Frame or handshake did not follow the wire protocol"
        super().__init__(message, **kwargs)


from .config.errors import ConfigurationError  # noqa: E402

__all__ = [
    "ApplicationError",
    "ConfigurationError",
    "NetworkError",
    "ProtocolError",
]
