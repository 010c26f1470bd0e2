"""Thread-safe set of active sinks, read through point-in-time snapshots."""

import logging
import threading

logger = logging.getLogger(__name__)


class SinkRegistry:
    """Ordered set of sinks keyed by identity.

    Dispatch reads :meth:`snapshot` so the lock is never held while sinks do
    I/O. :attr:`count` is advisory and may be stale as soon as it returns.
    """

    def __init__(self):
        self._sinks: list = []
        self._lock = threading.Lock()

    def add(self, sink) -> bool:
        """Register ``sink``. Adding the same instance twice is a no-op."""
        if sink is None:
            return False
        with self._lock:
            if any(s is sink for s in self._sinks):
                duplicate = True
            else:
                duplicate = False
                self._sinks.append(sink)
            count = len(self._sinks)
        if duplicate:
            logger.debug("Sink %s (id %x) already added, skipping", type(sink).__name__, id(sink))
            return False
        logger.debug("Added sink %s (id %x), count = %d", type(sink).__name__, id(sink), count)
        return True

    def remove(self, sink) -> bool:
        with self._lock:
            for i, s in enumerate(self._sinks):
                if s is sink:
                    del self._sinks[i]
                    removed = True
                    break
            else:
                removed = False
            count = len(self._sinks)
        if removed:
            logger.debug("Removed sink %s, count = %d", type(sink).__name__, count)
        return removed

    def clear(self) -> list:
        """Remove every sink and return them in registration order."""
        with self._lock:
            sinks, self._sinks = self._sinks, []
        return sinks

    def contains(self, sink) -> bool:
        with self._lock:
            return any(s is sink for s in self._sinks)

    def snapshot(self) -> tuple:
        with self._lock:
            return tuple(self._sinks)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._sinks)

    def __len__(self) -> int:
        return self.count

    def __contains__(self, sink) -> bool:
        return self.contains(sink)
