"""Bounded in-memory sink, mostly useful for tests and live viewers."""

import logging
import threading
from collections import deque
from typing import Callable, Iterable

from logsink.categories import CategoryMask
from logsink.models import LogEvent
from logsink.sink import accepts, write_each

logger = logging.getLogger(__name__)


class MemorySink:
    """Keeps the newest ``max_events`` events; the oldest are evicted first.

    Events are cloned on the way in and on the way out so that holders of
    the originals cannot observe each other's changes.
    """

    def __init__(
        self,
        max_events: int = 1000,
        enabled_categories: CategoryMask = CategoryMask.ALL,
        on_event: Callable[[LogEvent], None] | None = None,
    ):
        self.enabled_categories = enabled_categories
        self._max_events = max_events if max_events > 0 else 1000
        self._events: deque[LogEvent] = deque(maxlen=self._max_events)
        self._on_event = on_event
        self._lock = threading.Lock()

    @property
    def max_events(self) -> int:
        return self._max_events

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._events)

    def write(self, event: LogEvent) -> bool:
        if event is None:
            return True
        if not accepts(self, event):
            return False
        with self._lock:
            self._events.append(event.clone())
        self._notify(event)
        return True

    def write_batch(self, events: Iterable[LogEvent]) -> int:
        return write_each(self, events)

    def events(self, start: int = 0, count: int | None = None) -> list[LogEvent]:
        """Return copies of stored events, optionally a ``[start, start+count)`` slice."""
        if start < 0 or (count is not None and count <= 0):
            return []
        with self._lock:
            stored = list(self._events)
        end = len(stored) if count is None else start + count
        return [e.clone() for e in stored[start:end]]

    def clear(self):
        with self._lock:
            self._events.clear()

    def _notify(self, event: LogEvent):
        if self._on_event is None:
            return
        try:
            self._on_event(event.clone())
        except Exception:
            logger.debug("Memory sink observer raised", exc_info=True)
