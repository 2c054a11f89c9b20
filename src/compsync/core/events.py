"""Progress event stream.

The core pushes discrete progress events (``fetch:start``,
``install:progress``, ``sync:error`` ...) into an ``EventStream``. A UI
layer may subscribe with a callback or drain an async iterator; the core
never waits on subscribers and behaves identically with none attached.

Usage::

    events = EventStream()
    events.subscribe(lambda e: print(e.type, e.data))
    async for event in events.iterate():   # or drain from a task
        ...
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

FETCH_START = "fetch:start"
FETCH_COMPLETE = "fetch:complete"
INSTALL_PROGRESS = "install:progress"
SYNC_START = "sync:start"
SYNC_ERROR = "sync:error"
SYNC_COMPLETE = "sync:complete"
BATCH_START = "batch:start"
BATCH_RETRY = "batch:retry"
BATCH_ITEM = "batch:item"
BATCH_COMPLETE = "batch:complete"


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress notification.

    Attributes:
        type: Event type, e.g. ``"install:progress"``.
        data: Event payload. Keys depend on the type.
        timestamp: ``time.time()`` at emission.
    """

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[ProgressEvent], None]

_CLOSED = object()


class EventStream:
    """Fan-out of progress events to callbacks and async iterators.

    Callback exceptions are logged and swallowed: a broken progress
    display must never fail an install. Iterator queues are unbounded, so
    emission never blocks.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._queues: list[asyncio.Queue[Any]] = []

    @property
    def has_subscribers(self) -> bool:
        """Return True if any callback or iterator is attached."""
        return bool(self._listeners or self._queues)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event_type: str, **data: Any) -> ProgressEvent:
        """Publish an event to every subscriber.

        Args:
            event_type: Event type string.
            **data: Event payload.

        Returns:
            The emitted event.
        """
        event = ProgressEvent(type=event_type, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning("Progress listener failed on %s", event_type, exc_info=True)
        for queue in list(self._queues):
            queue.put_nowait(event)
        return event

    async def iterate(self) -> AsyncIterator[ProgressEvent]:
        """Yield events as they are emitted until ``close()`` is called."""
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def close(self) -> None:
        """End every open iterator."""
        for queue in list(self._queues):
            queue.put_nowait(_CLOSED)


class CollectingListener:
    """Listener that records every event it receives, in order."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[ProgressEvent]:
        """Return recorded events with the given type."""
        return [e for e in self.events if e.type == event_type]
