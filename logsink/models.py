"""LogEvent record and its tab-separated line format.

One line per event, seven columns, preceded once per file by HEADER::

    UtcTimestamp  Microseconds  ThreadId  SourceProcess  Source  Type  Message

Backslash, tab, CR and LF inside text columns are escaped so that every
event stays on one line with exactly seven columns.
"""

import gzip
import logging
import os
import re
import sys
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from logsink.categories import CategoryMask, category_for_label, type_label
from logsink.errors import EventFormatError

logger = logging.getLogger(__name__)

HEADER = "UtcTimestamp\tMicroseconds\tThreadId\tSourceProcess\tSource\tType\tMessage"
COLUMN_COUNT = 7

_START_NS = time.perf_counter_ns()

_ESCAPE_TABLE = str.maketrans({"\\": "\\\\", "\t": "\\t", "\n": "\\n", "\r": "\\r"})
_UNESCAPE_RE = re.compile(r"\\(.)")
_UNESCAPES = {"\\": "\\", "t": "\t", "n": "\n", "r": "\r"}


def elapsed_microseconds() -> int:
    """Monotonic microseconds since this module was imported."""
    return (time.perf_counter_ns() - _START_NS) // 1000


def format_thread_id(ident: int) -> str:
    return f"0x{ident:04x}"


def default_source_process() -> str:
    name = Path(sys.argv[0]).stem if sys.argv and sys.argv[0] else "python"
    return f"{name or 'python'}.{os.getpid()}"


SOURCE_PROCESS = default_source_process()


def format_timestamp(ts: datetime) -> str:
    """Render ``ts`` in local time as ``yyyy-MM-ddTHH:mm:ss.fff+HH:mm``."""
    local = ts.astimezone()
    offset = local.utcoffset() or timedelta(0)
    sign = "+" if offset >= timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return (
        f"{local:%Y-%m-%dT%H:%M:%S}.{local.microsecond // 1000:03d}"
        f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"
    )


def parse_timestamp(text: str) -> datetime:
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.astimezone()
    return ts.astimezone(timezone.utc)


def _escape(text: str) -> str:
    return text.translate(_ESCAPE_TABLE)


def _unescape(text: str) -> str:
    return _UNESCAPE_RE.sub(lambda m: _UNESCAPES.get(m.group(1), m.group(0)), text)


@dataclass(frozen=True)
class LogEvent:
    timestamp: datetime      # aware, UTC
    microseconds: int        # monotonic, since process start
    category: CategoryMask
    event_type: str          # label of the dominant category bit
    source_process: str
    source: str
    thread_id: str           # 0xHHHH
    message: str

    @classmethod
    def create(
        cls,
        category: CategoryMask,
        source: str,
        message: str,
        thread_id: int | str | None = None,
        source_process: str | None = None,
        timestamp: datetime | None = None,
        event_type: str | None = None,
    ) -> "LogEvent":
        """Stamp a new event with the current instant, thread and process.

        ``event_type`` overrides the label derived from ``category``.
        """
        if thread_id is None:
            thread_id = threading.get_native_id()
        if isinstance(thread_id, int):
            thread_id = format_thread_id(thread_id)
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        else:
            # Naive timestamps are taken as local time.
            timestamp = timestamp.astimezone(timezone.utc)
        return cls(
            timestamp=timestamp,
            microseconds=elapsed_microseconds(),
            category=CategoryMask(category),
            event_type=event_type or type_label(category),
            source_process=source_process or SOURCE_PROCESS,
            source=source or "",
            thread_id=thread_id,
            message="" if message is None else str(message),
        )

    @property
    def timestamp_text(self) -> str:
        return format_timestamp(self.timestamp)

    def sort_key(self) -> tuple[datetime, int, str]:
        return (self.timestamp, self.microseconds, self.thread_id)

    def clone(self) -> "LogEvent":
        return replace(self)

    def serialize(self) -> str:
        return "\t".join((
            self.timestamp_text,
            str(self.microseconds),
            _escape(self.thread_id),
            _escape(self.source_process),
            _escape(self.source),
            _escape(self.event_type),
            _escape(self.message),
        ))

    @classmethod
    def parse(cls, line: str) -> "LogEvent":
        """Parse one serialized line. Raises EventFormatError on malformed input."""
        columns = line.rstrip("\r\n").split("\t")
        if len(columns) != COLUMN_COUNT:
            raise EventFormatError(
                f"Expected {COLUMN_COUNT} columns, got {len(columns)}"
            )
        try:
            timestamp = parse_timestamp(columns[0])
            microseconds = int(columns[1])
        except ValueError as e:
            raise EventFormatError(str(e)) from e
        event_type = _unescape(columns[5])
        return cls(
            timestamp=timestamp,
            microseconds=microseconds,
            category=category_for_label(event_type),
            event_type=event_type,
            source_process=_unescape(columns[3]),
            source=_unescape(columns[4]),
            thread_id=_unescape(columns[2]),
            message=_unescape(columns[6]),
        )


def serialize_event(event: LogEvent) -> str:
    return event.serialize()


def parse_event(line: str) -> LogEvent | None:
    """Parse a line, returning None for the header or malformed lines."""
    if line.rstrip("\r\n") == HEADER:
        return None
    try:
        return LogEvent.parse(line)
    except EventFormatError as e:
        logger.debug("Failed to parse log line: %s", e)
        return None


def read_events(path: str | os.PathLike) -> Iterator[LogEvent]:
    """Yield events from a ``.log`` or ``.log.gz`` file, skipping bad lines."""
    path = os.fspath(path)
    if path.endswith(".gz"):
        f = gzip.open(path, "rt", encoding="utf-8", newline="\n")
    else:
        f = open(path, "r", encoding="utf-8", newline="\n")
    with f:
        for line in f:
            event = parse_event(line)
            if event is not None:
                yield event
