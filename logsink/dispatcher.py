"""Fan-out of log events to every registered sink.

A Dispatcher is the logging context: it owns the sink registry, the global
category mask and the sink-failure callback. Several can coexist in one
process, which keeps tests independent of each other.
"""

import logging
import traceback
from typing import Callable

from logsink.categories import CategoryMask
from logsink.models import SOURCE_PROCESS, LogEvent
from logsink.registry import SinkRegistry
from logsink.sink import accepts

logger = logging.getLogger(__name__)

SinkErrorHandler = Callable[[object, BaseException], None]


class Dispatcher:
    def __init__(
        self,
        registry: SinkRegistry | None = None,
        enabled_categories: CategoryMask = CategoryMask.ALL,
        source_process: str | None = None,
        on_sink_error: SinkErrorHandler | None = None,
    ):
        self.registry = registry if registry is not None else SinkRegistry()
        self.enabled_categories = enabled_categories
        self.source_process = source_process or SOURCE_PROCESS
        self._on_sink_error = on_sink_error

    def is_category_enabled(self, category: CategoryMask) -> bool:
        return bool(category & self.enabled_categories)

    def enable_categories_from_sinks(self) -> CategoryMask:
        """Set the global mask to the union of the registered sinks' masks."""
        mask = CategoryMask.NONE
        for sink in self.registry.snapshot():
            mask |= getattr(sink, "enabled_categories", CategoryMask.NONE)
        self.enabled_categories = mask
        return mask

    # -- writing ------------------------------------------------------------

    def write(
        self,
        category: CategoryMask,
        source: str,
        message: str,
        thread_id: int | str | None = None,
        event_type: str | None = None,
    ) -> bool:
        """Build one event and deliver it to every sink.

        Returns True unless a sink that accepts the category failed. A
        suppressed category returns True without building an event.
        ``event_type`` replaces the Type column label derived from the category.
        """
        if not self.is_category_enabled(category):
            return True
        event = LogEvent.create(
            category, source, message,
            thread_id=thread_id, source_process=self.source_process,
            event_type=event_type,
        )
        return self.dispatch(event)

    def write_format(
        self,
        category: CategoryMask,
        source: str,
        fmt: str,
        *args,
        thread_id: int | str | None = None,
    ) -> bool:
        """Like :meth:`write` with ``fmt.format(*args)`` as the message."""
        if not self.is_category_enabled(category):
            return True
        return self.write(category, source, self._format(source, fmt, args), thread_id=thread_id)

    def dispatch(self, event: LogEvent) -> bool:
        ok = True
        for sink in self.registry.snapshot():
            if not accepts(sink, event):
                continue
            try:
                if not sink.write(event):
                    ok = False
            except Exception as e:
                ok = False
                self._handle_sink_error(sink, e)
        return ok

    def _format(self, source: str, fmt: str, args: tuple) -> str:
        if not fmt:
            return ""
        if not args:
            return fmt
        try:
            return fmt.format(*args)
        except Exception as e:
            self.write(CategoryMask.ERROR, source, f"Error formatting log message: {e}")
            return fmt

    def _handle_sink_error(self, sink, error: BaseException):
        logger.warning("Sink %s raised during dispatch: %s", type(sink).__name__, error)
        if self._on_sink_error is None:
            return
        try:
            self._on_sink_error(sink, error)
        except Exception:
            logger.debug("Sink error handler raised", exc_info=True)

    # -- conveniences -------------------------------------------------------

    def _log(self, category: CategoryMask, source: str, message: str, args: tuple) -> bool:
        if args:
            return self.write_format(category, source, message, *args)
        return self.write(category, source, message)

    def debug(self, source: str, message: str, *args) -> bool:
        return self._log(CategoryMask.DEBUG, source, message, args)

    def info(self, source: str, message: str, *args) -> bool:
        return self._log(CategoryMask.INFORMATION, source, message, args)

    def warning(self, source: str, message: str, *args) -> bool:
        return self._log(CategoryMask.WARNING, source, message, args)

    def error(self, source: str, message: str, *args) -> bool:
        return self._log(CategoryMask.ERROR, source, message, args)

    def exception(
        self,
        source: str,
        exc: BaseException,
        message: str | None = None,
        method: str | None = None,
    ) -> bool:
        """Record an exception as Error events.

        Writes an optional ``message`` line, the exception summary (naming
        ``method`` when given), its traceback, then the same two lines for
        the chained cause or context if there is one.
        """
        if not self.is_category_enabled(CategoryMask.ERROR):
            return True
        ok = True
        if message:
            ok &= self.write(CategoryMask.ERROR, source, f"{message}: {exc}")
        where = f"Exception in {method}" if method else "Exception"
        ok &= self.write(CategoryMask.ERROR, source, f"{where}: {type(exc).__name__} - {exc}")
        if exc.__traceback__ is not None:
            ok &= self.write(CategoryMask.ERROR, source, f"Stack trace: {_format_tb(exc)}")
        cause = exc.__cause__ or exc.__context__
        if cause is not None:
            ok &= self.write(
                CategoryMask.ERROR, source,
                f"Inner exception: {type(cause).__name__} - {cause}",
            )
            if cause.__traceback__ is not None:
                ok &= self.write(CategoryMask.ERROR, source, f"Inner stack trace: {_format_tb(cause)}")
        return bool(ok)


def _format_tb(exc: BaseException) -> str:
    return "".join(traceback.format_tb(exc.__traceback__)).rstrip()
