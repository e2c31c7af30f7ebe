from __future__ import annotations

"""Exception types for configuration handling."""

from typing import Any


class ConfigurationError(RuntimeError):
    """Raised when configuration values are missing or malformed."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Configuration is invalid or missing"
        super().__init__(message)
        for key, value in kwargs.items():
            setattr(self, key, value)

    @classmethod
    def invalid_format(cls, param_name: str, received_value: str, expected_format: str = "") -> "ConfigurationError":
        """Create error for invalid format."""
        msg = f"{param_name} has invalid format (received {received_value!r})"
        if expected_format:
            msg += f". Expected {expected_format}"
        return cls(msg, param_name=param_name)

    @classmethod
    def missing_value(cls, param_name: str, context: str = "") -> "ConfigurationError":
        """Create error for missing value."""
        msg = f"{param_name} is missing or empty"
        if context:
            msg += f": {context}"
        return cls(msg, param_name=param_name)

    @classmethod
    def invalid_value(cls, param_name: str, value, reason: str = "") -> "ConfigurationError":
        """Create error for invalid value."""
        msg = f"Invalid value for {param_name}: {value!r}"
        if reason:
            msg += f". {reason}"
        return cls(msg, param_name=param_name, value=value)

    @classmethod
    def unknown_option(cls, param_name: str) -> "ConfigurationError":
        """Create error for an override that names no configuration field."""
        return cls(f"Unknown connection option {param_name!r}", param_name=param_name)


__all__ = ["ConfigurationError"]
