"""Background task helpers that an owner can wait on during shutdown."""

import logging
import queue
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class SerialWorker:
    """Runs submitted tasks one at a time, in submission order.

    A single daemon thread drains the queue, so tasks never overlap. The
    thread is started on first submit and stopped by a ``None`` poison pill
    in :meth:`close`.
    """

    def __init__(self, name: str):
        self._name = name
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending = 0
        self._closed = False
        self._thread: threading.Thread | None = None

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def submit(self, fn: Callable, *args) -> bool:
        """Queue ``fn(*args)``. Returns False once the worker is closed."""
        with self._lock:
            if self._closed:
                return False
            self._pending += 1
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
        self._queue.put((fn, args))
        return True

    def _run(self):
        while True:
            item = self._queue.get()
            if item is None:
                return
            fn, args = item
            try:
                fn(*args)
            except Exception:
                logger.exception("Background task in %s failed", self._name)
            finally:
                with self._lock:
                    self._pending -= 1
                    if self._pending == 0:
                        self._idle.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every queued task has finished. False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def close(self, timeout: float | None = None) -> bool:
        """Stop accepting work and let the thread exit after the queue drains."""
        with self._lock:
            if self._closed:
                thread = self._thread
            else:
                self._closed = True
                thread = self._thread
                if thread is not None:
                    self._queue.put(None)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()


class SingleFlight:
    """Runs at most one instance of a task at a time.

    A trigger that arrives while a run is in flight is coalesced into a
    no-op instead of being queued.
    """

    def __init__(self, name: str):
        self._name = name
        self._lock = threading.Lock()
        self._running = False
        self._idle = threading.Event()
        self._idle.set()
        self._completed = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def trigger(self, fn: Callable, *args) -> bool:
        """Start ``fn(*args)`` on a new thread unless a run is in flight."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            self._idle.clear()
        thread = threading.Thread(target=self._run, args=(fn, args), name=self._name, daemon=True)
        try:
            thread.start()
        except RuntimeError:
            self._finish()
            raise
        return True

    def _run(self, fn: Callable, args: tuple):
        try:
            fn(*args)
        except Exception:
            logger.exception("Background task in %s failed", self._name)
        finally:
            self._finish()

    def _finish(self):
        with self._lock:
            self._running = False
            self._completed += 1
            self._idle.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no run is in flight. False on timeout."""
        return self._idle.wait(timeout)
