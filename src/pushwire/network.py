"""
Network reachability signals.

``NetworkReachability`` is the broadcaster the manager subscribes to; it only
emits on edges. ``ReachabilityProbe`` feeds one from periodic HTTP probes,
classifying failures the same way for every caller.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Callable, Optional, Protocol

import aiohttp

from .events import EventsDispatcher

logger = logging.getLogger(__name__)

DEFAULT_PROBE_INTERVAL_SECONDS = 15.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0

NETWORK_ERROR_TYPES = (
    aiohttp.ClientConnectorError,
    aiohttp.ServerTimeoutError,
    asyncio.TimeoutError,
    socket.gaierror,
    OSError,
)


def is_network_unreachable_error(exception: BaseException) -> bool:
    """
    Determine if an exception represents a network connectivity failure.

    Args:
        exception: Exception to check

    Returns:
        True if this is a network-level error that indicates connectivity issues
    """
    if isinstance(exception, NETWORK_ERROR_TYPES):
        return True

    os_error = getattr(exception, "os_error", None)
    return isinstance(os_error, OSError)


class NetworkMonitor(Protocol):
    """Source of ``online``/``offline`` edge events."""

    def is_online(self) -> Optional[bool]: ...

    def bind(self, event_name: str, callback: Callable[[Any], Any]) -> Any: ...

    def unbind(self, event_name: Optional[str] = None, callback: Optional[Callable[[Any], Any]] = None) -> Any: ...


class NetworkReachability(EventsDispatcher):
    """Holds the last known reachability; ``None`` means unknown."""

    def __init__(self, online: Optional[bool] = None):
        super().__init__()
        self._online = online

    def is_online(self) -> Optional[bool]:
        return self._online

    def set_online(self) -> None:
        if self._online is True:
            return
        self._online = True
        logger.info("Network reachable")
        self.emit("online")

    def set_offline(self) -> None:
        if self._online is False:
            return
        self._online = False
        logger.warning("Network unreachable")
        self.emit("offline")


class ReachabilityProbe:
    """Periodically probe an HTTP endpoint and report reachability edges."""

    def __init__(
        self,
        reachability: NetworkReachability,
        probe_url: str,
        *,
        interval_seconds: float = DEFAULT_PROBE_INTERVAL_SECONDS,
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.reachability = reachability
        self.probe_url = probe_url
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:  # policy_guard: allow-silent-handler
                pass
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def probe_once(self) -> bool:
        """Run one probe and update the reachability; returns the observed state."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with self._session.head(self.probe_url, timeout=timeout, allow_redirects=False) as response:
                logger.debug("Reachability probe returned %s", response.status)
        except aiohttp.ClientError as exc:
            if not is_network_unreachable_error(exc):
                # the server answered with something unusual; the network itself works
                logger.debug("Reachability probe error: %s", exc)
                self.reachability.set_online()
                return True
            logger.debug("Reachability probe failed: %s", exc)
            self.reachability.set_offline()
            return False
        except (asyncio.TimeoutError, OSError) as exc:
            logger.debug("Reachability probe failed: %s", exc)
            self.reachability.set_offline()
            return False
        self.reachability.set_online()
        return True

    async def _run(self) -> None:
        while True:
            await self.probe_once()
            await asyncio.sleep(self.interval_seconds)
