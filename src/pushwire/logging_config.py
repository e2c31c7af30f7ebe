"""
Logging configuration for applications embedding pushwire.

``setup_logging`` configures the root logger once with:
- console output to stdout
- optional file output to ``logs/{service_name}.log`` (fresh file per start
  unless ``LOG_APPEND=1``)
- quieter third-party loggers
"""

import logging
import logging.handlers
import os
import sys
import threading
from pathlib import Path
from typing import Optional

from .config import env_bool, env_str

# Thread-safe lock for logging configuration
_config_lock = threading.Lock()
_MODULE_LOGGER = logging.getLogger(__name__)
_UNKNOWN_LOGGER_NAME = "<unknown>"
_LOG_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or env_str("PUSHWIRE_LOG_LEVEL", or_value="INFO") or "INFO").upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        _MODULE_LOGGER.warning("Unknown log level %r; using INFO", name)
        return logging.INFO
    return resolved


def _close_handlers(logger: logging.Logger, logger_name: Optional[str] = None) -> None:
    """Close all handlers for a logger, logging any errors."""
    for handler in list(logger.handlers):
        try:
            handler.close()
        except OSError as e:  # Best-effort cleanup operation  # policy_guard: allow-silent-handler
            safe_name = logger_name if logger_name else _UNKNOWN_LOGGER_NAME
            _MODULE_LOGGER.debug("Handler close failed for logger '%s': %s", safe_name, e)


def _build_console_handler(level: int) -> logging.Handler:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    console_handler.setLevel(level)
    return console_handler


def _configure_file_handler(service_name: Optional[str], log_dir: Optional[Path]) -> Optional[logging.Handler]:
    if not service_name:
        return None

    logs_dir = log_dir if log_dir is not None else Path.cwd() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"{service_name}.log"
    file_mode = "a" if os.getenv("LOG_APPEND") == "1" else "w"

    handler_cls = getattr(logging.handlers, "WatchedFileHandler", logging.FileHandler)
    file_handler = handler_cls(log_path, mode=file_mode)
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    file_handler.setLevel(logging.INFO)
    return file_handler


def _suppress_noisy_third_parties() -> None:
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def setup_logging(
    service_name: Optional[str] = None,
    *,
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Configure logging for the application.

    An already configured root logger is left alone unless ``force`` is set
    or ``PUSHWIRE_LOG_FORCE`` is true.
    """

    with _config_lock:
        root_logger = logging.getLogger()
        force = force or bool(env_bool("PUSHWIRE_LOG_FORCE", or_value=False))
        if root_logger.handlers and not force:
            return

        _close_handlers(root_logger)
        root_logger.handlers = []

        resolved_level = _resolve_level(level)
        root_logger.addHandler(_build_console_handler(resolved_level))

        file_handler = _configure_file_handler(service_name, log_dir)
        if file_handler:
            root_logger.addHandler(file_handler)

        root_logger.setLevel(resolved_level)
        _suppress_noisy_third_parties()
