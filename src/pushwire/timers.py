"""Cancellable loop timers and the replaceable timer handle used by the manager."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Any]


class TimerHandle(Protocol):
    def ensure_aborted(self) -> None: ...

    def is_running(self) -> bool: ...


TimerFactory = Callable[[float, TimerCallback], TimerHandle]


class Timer:
    """One-shot timer scheduled on the running event loop.

    ``ensure_aborted`` may be called any number of times, before or after the
    timer fires.
    """

    def __init__(self, delay_seconds: float, callback: TimerCallback):
        self.delay_seconds = max(0.0, float(delay_seconds))
        self._callback: Optional[TimerCallback] = callback
        loop = asyncio.get_running_loop()
        self._handle: Optional[asyncio.TimerHandle] = loop.call_later(self.delay_seconds, self._fire)

    def _fire(self) -> None:
        callback = self._callback
        self._handle = None
        self._callback = None
        if callback is not None:
            callback()

    def is_running(self) -> bool:
        return self._handle is not None

    def ensure_aborted(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._callback = None


class PeriodicTimer:
    """Repeating timer; the next tick is armed after the callback returns."""

    def __init__(self, interval_seconds: float, callback: TimerCallback):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = float(interval_seconds)
        self._callback: Optional[TimerCallback] = callback
        self._loop = asyncio.get_running_loop()
        self._handle: Optional[asyncio.TimerHandle] = self._loop.call_later(self.interval_seconds, self._tick)

    def _tick(self) -> None:
        callback = self._callback
        if callback is None:
            return
        try:
            callback()
        finally:
            if self._callback is not None:
                self._handle = self._loop.call_later(self.interval_seconds, self._tick)

    def is_running(self) -> bool:
        return self._callback is not None

    def ensure_aborted(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._callback = None


class TimerSlot:
    """
    Owned, replaceable timer handle.

    Arming a slot always aborts whatever timer it held before, so a slot never
    has more than one outstanding timer.
    """

    def __init__(self, name: str, timer_factory: TimerFactory = Timer):
        self.name = name
        self._timer_factory = timer_factory
        self._timer: Optional[TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.is_running()

    def arm(self, delay_seconds: float, callback: TimerCallback) -> None:
        self.cancel()
        logger.debug("Arming %s timer for %.3fs", self.name, delay_seconds)
        self._timer = self._timer_factory(delay_seconds, callback)

    def cancel(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.ensure_aborted()
