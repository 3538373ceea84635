"""Ordered event dispatch for request handles.

Both :class:`~offlinehttp.client.transport.TransportHandle` and
:class:`~offlinehttp.client.request.CachingRequest` expose the browser-style
event surface (``load``, ``error``, ``readystatechange``...). Each event
type keeps:

* one optional *handler slot* (``request.onload = fn``), and
* an ordered list of *listeners* (``request.add_event_listener("load", fn)``).

On dispatch the slot runs first, then the listeners in registration order.
Handlers may be plain callables or coroutine functions. A handler that raises
is logged and the remaining handlers still run, so one faulty listener
cannot stall a request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from offlinehttp._aio import maybe_await

logger = logging.getLogger(__name__)

EVENT_TYPES: tuple[str, ...] = (
    "readystatechange",
    "loadstart",
    "progress",
    "load",
    "error",
    "timeout",
    "abort",
    "loadend",
)

# ready_state values
UNSENT = 0
OPENED = 1
HEADERS_RECEIVED = 2
LOADING = 3
DONE = 4


@dataclass
class Event:
    """A dispatched event.

    Attributes:
        type: One of :data:`EVENT_TYPES`.
        target: The handle that dispatched the event.
        error: The failure for ``error`` and ``timeout`` events.
        loaded: Bytes received so far, for ``progress`` events.
        total: Expected total bytes, for ``progress`` events.
    """

    type: str
    target: Any = None
    error: Optional[BaseException] = None
    loaded: int = 0
    total: int = 0


Listener = Callable[[Event], Union[None, Awaitable[None]]]


class EventEmitter:
    """Per-handle registry of event handler slots and listener lists."""

    def __init__(self) -> None:
        self._slots: dict[str, Optional[Listener]] = {name: None for name in EVENT_TYPES}
        self._listeners: dict[str, list[Listener]] = {name: [] for name in EVENT_TYPES}

    @staticmethod
    def _check(event_type: str) -> None:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

    def add_listener(self, event_type: str, listener: Listener) -> None:
        """Append *listener*; adding the same listener twice has no effect."""
        self._check(event_type)
        if listener not in self._listeners[event_type]:
            self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: str, listener: Listener) -> None:
        self._check(event_type)
        if listener in self._listeners[event_type]:
            self._listeners[event_type].remove(listener)

    def listeners(self, event_type: str) -> list[Listener]:
        self._check(event_type)
        return list(self._listeners[event_type])

    def get_slot(self, event_type: str) -> Optional[Listener]:
        self._check(event_type)
        return self._slots[event_type]

    def set_slot(self, event_type: str, handler: Optional[Listener]) -> None:
        self._check(event_type)
        self._slots[event_type] = handler

    async def emit(self, event: Event) -> None:
        """Dispatch *event* to the slot handler, then to every listener."""
        handlers: list[Listener] = []
        slot = self._slots[event.type]
        if slot is not None:
            handlers.append(slot)
        handlers.extend(self._listeners[event.type])
        for handler in handlers:
            try:
                await maybe_await(handler(event))
            except Exception:
                logger.exception("Handler for '%s' event failed", event.type)


class handler_slot:
    """Descriptor exposing an event's handler slot as an ``on<event>`` attribute.

    The owning class must hold its :class:`EventEmitter` in ``self.events``.
    """

    def __init__(self, event_type: str) -> None:
        EventEmitter._check(event_type)
        self._event_type = event_type

    def __set_name__(self, owner: type, name: str) -> None:
        self._name = name

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance.events.get_slot(self._event_type)

    def __set__(self, instance: Any, handler: Optional[Listener]) -> None:
        instance.events.set_slot(self._event_type, handler)
