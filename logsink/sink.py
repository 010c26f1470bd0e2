"""Sink capability interface shared by every event destination."""

from typing import Iterable, Protocol, runtime_checkable

from logsink.categories import CategoryMask
from logsink.models import LogEvent


@runtime_checkable
class Sink(Protocol):
    enabled_categories: CategoryMask

    def write(self, event: LogEvent) -> bool: ...

    def write_batch(self, events: Iterable[LogEvent]) -> int: ...


@runtime_checkable
class Disposable(Protocol):
    def dispose(self) -> None: ...


def accepts(sink, event: LogEvent) -> bool:
    """True if the sink's category mask lets ``event`` through."""
    mask = getattr(sink, "enabled_categories", CategoryMask.ALL)
    return bool(event.category & mask)


def write_each(sink, events: Iterable[LogEvent] | None) -> int:
    """Write events one at a time, returning how many the sink accepted."""
    if not events:
        return 0
    return sum(1 for event in events if event is not None and sink.write(event))
