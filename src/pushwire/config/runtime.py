"""Environment lookups for pushwire settings, with ``.env`` file fallbacks."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional, TypeVar

from .errors import ConfigurationError

T = TypeVar("T")

_BOOL_WORDS = {
    "1": True,
    "true": True,
    "t": True,
    "yes": True,
    "y": True,
    "on": True,
    "0": False,
    "false": False,
    "f": False,
    "no": False,
    "n": False,
    "off": False,
}

# Earlier files win when both define a name
_DOTENV_CANDIDATES = (Path(".env"), Path.home() / ".pushwire.env")

_DEFAULT_VALUES: dict[str, str] | None = None


def _dotenv_values() -> dict[str, str]:
    from .runtime_helpers import DotenvLoader

    global _DEFAULT_VALUES
    if _DEFAULT_VALUES is None:
        merged: dict[str, str] = {}
        for path in _DOTENV_CANDIDATES:
            for key, value in DotenvLoader.load_from_file(path).items():
                merged.setdefault(key, value)
        _DEFAULT_VALUES = merged
    return _DEFAULT_VALUES


def reset_default_values() -> None:
    """Forget cached .env values so the next lookup re-reads them."""
    global _DEFAULT_VALUES
    _DEFAULT_VALUES = None


def _lookup(name: str, *, strip: bool = True, allow_blank: bool = False) -> Optional[str]:
    """Process environment first, then .env files; blank counts as unset unless allowed."""
    for raw in (os.getenv(name), _dotenv_values().get(name)):
        if raw is None:
            continue
        value = raw.strip() if strip else raw
        if value or allow_blank:
            return value
    return None


def _missing(name: str) -> ConfigurationError:
    return ConfigurationError(f"Required environment variable {name!r} is not set")


def _parse(name: str, or_value: Optional[T], required: bool, cast: Callable[[str], T], expected: str) -> Optional[T]:
    raw = _lookup(name)
    if raw is None:
        if required and or_value is None:
            raise _missing(name)
        return or_value
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Environment variable {name!r} must be {expected} (got {raw!r})") from exc


def _to_bool(raw: str) -> bool:
    try:
        return _BOOL_WORDS[raw.lower()]
    except KeyError:
        raise ValueError(raw) from None


def env_str(
    name: str,
    or_value: str | None = None,
    *,
    required: bool = False,
    strip: bool = True,
    allow_blank: bool = False,
) -> str | None:
    """Fetch a setting as a string."""
    value = _lookup(name, strip=strip, allow_blank=allow_blank)
    if value is None:
        if required:
            raise _missing(name)
        return or_value
    return value


def env_int(name: str, or_value: int | None = None, *, required: bool = False) -> int | None:
    return _parse(name, or_value, required, int, "an integer")


def env_float(name: str, or_value: float | None = None, *, required: bool = False) -> float | None:
    return _parse(name, or_value, required, float, "a float")


def env_bool(name: str, or_value: bool | None = None, *, required: bool = False) -> bool | None:
    return _parse(name, or_value, required, _to_bool, f"a boolean (one of {sorted(_BOOL_WORDS)})")


def env_seconds(name: str, or_value: float | None = None, *, required: bool = False) -> float | None:
    """Fetch a duration in seconds; negative values are rejected."""
    value = env_float(name, or_value=or_value, required=required)
    if value is not None and value < 0:
        raise ConfigurationError(f"Environment variable {name!r} must be non-negative (got {value})")
    return value
