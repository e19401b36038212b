from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from queue import Empty, Full, Queue
from threading import Lock
from typing import Any

from chat_composer.events import AppEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Typed notification queue for the composer.

    ``publish`` is safe from any thread (network listeners, message stores).
    Handlers only run inside ``drain()``, on whichever thread owns the
    composer, so they never interleave with its other mutations.
    """

    def __init__(self, maxsize: int = 512):
        self._queue: Queue[AppEvent] = Queue(maxsize=maxsize)
        self._handlers: dict[type[AppEvent], list[Callable[[Any], None]]] = defaultdict(
            list
        )
        self._lock = Lock()

    def subscribe(
        self, event_type: type[AppEvent], handler: Callable[[Any], None]
    ) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def unsubscribe(
        self, event_type: type[AppEvent], handler: Callable[[Any], None]
    ) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: AppEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except Full:
            logger.warning(
                "Event queue full; dropped topic=%s source=%s",
                event.topic,
                event.source,
            )
            return False
        return True

    def drain(self) -> int:
        """Deliver queued events on the calling thread; returns how many."""
        delivered = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except Empty:
                return delivered
            self._dispatch(event)
            delivered += 1

    def _dispatch(self, event: AppEvent) -> None:
        with self._lock:
            handlers = [
                handler
                for event_type, registered in self._handlers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # One broken subscriber must not starve the others.
                logger.exception(
                    "Event handler failed topic=%s source=%s",
                    event.topic,
                    event.source,
                )
