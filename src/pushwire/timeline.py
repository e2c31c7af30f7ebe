"""Connection timeline collection and best-effort reporting."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

import aiohttp
import orjson

from .async_helpers import safely_schedule_coroutine

logger = logging.getLogger(__name__)

DEFAULT_TIMELINE_LIMIT = 50
DEFAULT_TIMELINE_PATH = "/timeline/v2"
SEND_TIMEOUT_SECONDS = 10.0

SendCallback = Callable[[Optional[BaseException], Optional[Dict[str, Any]]], Any]


class TimelineLevel(IntEnum):
    ERROR = 3
    INFO = 6
    DEBUG = 7


class Timeline:
    """
    Bounded buffer of connection events.

    Only the newest ``limit`` events are kept; older ones are dropped as new
    ones arrive.
    """

    def __init__(self, key: str, session_id: int, *, limit: int = DEFAULT_TIMELINE_LIMIT, level: TimelineLevel = TimelineLevel.INFO):
        self.key = key
        self.session_id = session_id
        self.limit = limit
        self.level = level
        self.sent = 0
        self._events: List[Dict[str, Any]] = []

    def log(self, level: TimelineLevel, event: Dict[str, Any]) -> None:
        if level > self.level:
            return
        entry = dict(event)
        entry["timestamp"] = int(time.time() * 1000)
        entry["level"] = int(level)
        self._events.append(entry)
        if len(self._events) > self.limit:
            del self._events[: len(self._events) - self.limit]

    def error(self, event: Dict[str, Any]) -> None:
        self.log(TimelineLevel.ERROR, event)

    def info(self, event: Dict[str, Any]) -> None:
        self.log(TimelineLevel.INFO, event)

    def debug(self, event: Dict[str, Any]) -> None:
        self.log(TimelineLevel.DEBUG, event)

    def is_empty(self) -> bool:
        return not self._events

    def __len__(self) -> int:
        return len(self._events)

    def drain(self, **metadata: Any) -> Dict[str, Any]:
        """Return the report payload and clear the buffer."""
        payload = {
            "key": self.key,
            "session": self.session_id,
            "bundle": self.sent + 1,
            "timeline": self._events,
        }
        payload.update(metadata)
        self._events = []
        self.sent += 1
        return payload


class TimelineSender:
    """POST timeline reports to the stats host without blocking the caller."""

    def __init__(
        self,
        timeline: Timeline,
        *,
        host: str,
        encrypted: bool = False,
        path: str = DEFAULT_TIMELINE_PATH,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        self.timeline = timeline
        self.host = host
        self.encrypted = encrypted
        self.path = path
        self.session_factory = session_factory

    @property
    def url(self) -> str:
        scheme = "https" if self.encrypted else "http"
        return f"{scheme}://{self.host}{self.path}/{self.timeline.key}"

    def send(self, callback: Optional[SendCallback] = None) -> Optional[asyncio.Task[Any]]:
        if self.timeline.is_empty():
            return None
        payload = self.timeline.drain(encrypted=self.encrypted)
        return safely_schedule_coroutine(lambda: self._post(payload, callback))

    async def _post(self, payload: Dict[str, Any], callback: Optional[SendCallback]) -> None:
        body = orjson.dumps(payload)
        timeout = aiohttp.ClientTimeout(total=SEND_TIMEOUT_SECONDS)
        error: Optional[BaseException] = None
        result: Optional[Dict[str, Any]] = None
        try:
            async with self.session_factory() as session:
                async with session.post(
                    self.url,
                    data=body,
                    headers={"Content-Type": "application/json"},
                    timeout=timeout,
                ) as response:
                    response.raise_for_status()
                    result = {"status": response.status}
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logger.debug("Timeline report failed: %s", exc)
            error = exc
        if callback is not None:
            callback(error, result)


def timeline_sender_factory(timeline: Timeline, options: Dict[str, Any]) -> TimelineSender:
    return TimelineSender(timeline, host=options["host"], encrypted=bool(options.get("encrypted")))
