"""Synchronous event dispatch shared by the manager, connections and monitors."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional

from .async_helpers import safely_schedule_coroutine

logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], Any]
GlobalCallback = Callable[[str, Any], Any]


class EventsDispatcher:
    """
    Name-keyed callback registry.

    Callbacks run synchronously, in bind order, on the emitting call stack.
    A callback returning a coroutine has it scheduled on the running loop.
    A failing callback is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._callbacks: DefaultDict[str, List[EventCallback]] = defaultdict(list)
        self._global_callbacks: List[GlobalCallback] = []

    def bind(self, event_name: str, callback: EventCallback) -> "EventsDispatcher":
        self._callbacks[event_name].append(callback)
        return self

    def bind_all(self, callback: GlobalCallback) -> "EventsDispatcher":
        """Receive every event as ``callback(event_name, data)``."""
        self._global_callbacks.append(callback)
        return self

    def unbind(self, event_name: Optional[str] = None, callback: Optional[EventCallback] = None) -> "EventsDispatcher":
        """
        Remove callbacks.

        With both arguments, removes that callback from that event. With only
        ``event_name``, clears the event. With only ``callback``, removes it
        from every event. With neither, clears everything except global callbacks.
        """
        if event_name is not None and callback is not None:
            callbacks = self._callbacks.get(event_name, [])
            if callback in callbacks:
                callbacks.remove(callback)
        elif event_name is not None:
            self._callbacks.pop(event_name, None)
        elif callback is not None:
            for callbacks in self._callbacks.values():
                while callback in callbacks:
                    callbacks.remove(callback)
        else:
            self._callbacks.clear()
        return self

    def unbind_all(self, callback: Optional[GlobalCallback] = None) -> "EventsDispatcher":
        if callback is None:
            self._global_callbacks.clear()
        elif callback in self._global_callbacks:
            self._global_callbacks.remove(callback)
        return self

    def has_callbacks(self, event_name: str) -> bool:
        return bool(self._callbacks.get(event_name))

    def emit(self, event_name: str, data: Any = None) -> "EventsDispatcher":
        for callback in list(self._global_callbacks):
            self._invoke(event_name, callback, event_name, data)
        for callback in list(self._callbacks.get(event_name, [])):
            self._invoke(event_name, callback, data)
        return self

    @staticmethod
    def _invoke(event_name: str, callback: Callable[..., Any], *args: Any) -> None:
        try:
            result = callback(*args)
        except Exception:  # policy_guard: allow-silent-handler
            logger.exception("Callback for '%s' failed", event_name)
            return
        if asyncio.iscoroutine(result):
            safely_schedule_coroutine(result)
