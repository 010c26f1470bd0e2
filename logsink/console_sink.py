"""Console sink: one colorized line per event on stdout."""

import sys
import threading
from typing import Iterable, TextIO

from logsink.categories import CategoryMask
from logsink.models import LogEvent
from logsink.sink import accepts, write_each

# ANSI color codes
COLORS = {
    "Error": "\033[31m",        # red
    "Warning": "\033[33m",      # yellow
    "Information": "\033[37m",  # white
    "Debug": "\033[90m",        # gray
}
DEFAULT_COLOR = "\033[36m"      # cyan
RESET = "\033[0m"


def format_console_line(event: LogEvent) -> str:
    return (
        f"[{event.timestamp_text}] [{event.thread_id}] [{event.event_type}] "
        f"{event.source}: {event.message}"
    )


class ConsoleSink:
    def __init__(
        self,
        enabled_categories: CategoryMask = CategoryMask.ALL,
        stream: TextIO | None = None,
        use_color: bool = True,
    ):
        self.enabled_categories = enabled_categories
        self._stream = stream
        self._use_color = use_color
        self._lock = threading.Lock()

    def write(self, event: LogEvent) -> bool:
        if event is None:
            return True
        if not accepts(self, event):
            return False
        line = format_console_line(event)
        if self._use_color:
            line = f"{COLORS.get(event.event_type, DEFAULT_COLOR)}{line}{RESET}"
        # Resolved per call so redirected stdout is honored.
        stream = self._stream or sys.stdout
        try:
            with self._lock:
                stream.write(line + "\n")
                stream.flush()
            return True
        except (OSError, ValueError):
            return False

    def write_batch(self, events: Iterable[LogEvent]) -> int:
        return write_each(self, events)
