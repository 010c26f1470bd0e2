"""Rotating file sink with retry, background compression and retention cleanup.

Files are named ``{base_name}_{yyyyMMdd}_{seq}{extension}``. A new file is
opened when the event's local date changes (daily mode) or the current file
reaches ``max_file_size``. With compression on, a closed ``.log`` file is
renamed to ``.log.tmp`` and gzipped to ``.log.gz`` on a background worker.
Every file open triggers one retention pass, coalesced if one is running.
"""

import logging
import os
import sys
import threading
import time
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, TextIO

from logsink.config import FileSinkConfig
from logsink.models import HEADER, LogEvent
from logsink.retry import RetryBudget, retry_io
from logsink.rotator import (
    COMPRESSING_SUFFIX,
    GZ_SUFFIX,
    choose_file_path,
    compress_file,
    enforce_retention,
)
from logsink.sink import accepts, write_each
from logsink.workers import SerialWorker, SingleFlight

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[str, BaseException], None]


class FileSink:
    def __init__(
        self,
        config: FileSinkConfig,
        on_error: ErrorHandler | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        config.validate()
        self._config = config
        self.enabled_categories = config.enabled_categories
        self._on_error = on_error
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep

        self._lock = threading.Lock()
        self._file: TextIO | None = None
        self._current_path: Path | None = None
        self._current_date: date | None = None
        self._current_size = 0
        self._disposed = False
        # (message, error) pairs reported under self._lock, delivered once it is released
        self._deferred: list[tuple[str, BaseException]] = []
        self._in_callback = threading.local()

        self._compressor = SerialWorker(f"{config.base_name}-compress")
        self._cleanup = SingleFlight(f"{config.base_name}-cleanup")

    # -- properties ---------------------------------------------------------

    @property
    def config(self) -> FileSinkConfig:
        return self._config

    @property
    def current_path(self) -> Path | None:
        with self._lock:
            return self._current_path if self._file is not None else None

    @property
    def current_date(self) -> date | None:
        with self._lock:
            return self._current_date if self._file is not None else None

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._file is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def cleanup_running(self) -> bool:
        return self._cleanup.running

    def directory_for(self, day: date) -> Path:
        directory = Path(self._config.base_directory)
        if self._config.date_subdirectory:
            directory = directory / day.strftime(self._config.date_subdirectory)
        return directory

    # -- writing ------------------------------------------------------------

    def write(self, event: LogEvent) -> bool:
        """Append one event. Never raises; returns False on unrecoverable failure."""
        if event is None:
            return True
        if not accepts(self, event):
            return False
        if self._disposed:
            return False

        policy = self._config.retry_policy
        budget = policy.budget(self._sleep)
        try:
            line = event.serialize() + "\n"
            return retry_io(
                lambda: self._append(event.timestamp, line, budget),
                policy,
                budget,
                on_retry=lambda attempt, e: self._report(
                    f"Write failed, retrying (attempt {attempt}/{policy.attempts})",
                    e, logging.WARNING,
                ),
            )
        except OSError as e:
            self._report("Write failed after retries", e)
            return False
        except Exception as e:
            self._report("Write failed", e)
            return False
        finally:
            self._deliver_deferred()

    def write_batch(self, events: Iterable[LogEvent]) -> int:
        return write_each(self, events)

    def _append(self, timestamp: datetime, line: str, budget: RetryBudget) -> bool:
        with self._lock:
            if self._disposed:
                return False
            self._ensure_open(timestamp, budget)
            try:
                self._file.write(line)
                if self._config.auto_flush:
                    self._file.flush()
            except OSError:
                # Drop the handle so the next attempt reopens the file.
                self._abandon_file()
                raise
            self._current_size += len(line.encode("utf-8"))
            return True

    def flush(self):
        with self._lock:
            if self._file is not None:
                self._file.flush()

    # -- file management (callers hold self._lock) --------------------------

    def _ensure_open(self, timestamp: datetime, budget: RetryBudget):
        local_date = timestamp.astimezone().date()
        if self._file is not None and (
            (self._config.daily_files and local_date != self._current_date)
            or self._current_size >= self._config.max_file_size
        ):
            self._close_file()

        if self._file is None:
            policy = self._config.retry_policy
            retry_io(
                lambda: self._open_file(local_date),
                policy,
                budget,
                on_retry=lambda attempt, e: self._report_locked(
                    f"Opening log file failed, retrying (attempt {attempt}/{policy.attempts})",
                    e, logging.WARNING,
                ),
            )
            self._trigger_cleanup()

    def _open_file(self, local_date: date):
        cfg = self._config
        directory = self.directory_for(local_date)
        os.makedirs(directory, exist_ok=True)
        path = choose_file_path(
            directory, cfg.base_name, local_date, cfg.plain_extension,
            cfg.max_file_size, compressed=cfg.enable_compression,
        )
        is_new = not path.exists()
        f = open(path, "a", encoding="utf-8")
        try:
            if is_new:
                f.write(HEADER + "\n")
                f.flush()
            size = path.stat().st_size
        except OSError:
            f.close()
            raise

        self._file = f
        self._current_path = path
        self._current_date = local_date
        self._current_size = size
        logger.debug("Opened log file %s (%s)", path, "new" if is_new else "resumed")

    def _abandon_file(self):
        if self._file is None:
            return
        try:
            self._file.close()
        except OSError:
            pass
        self._file = None
        self._current_size = 0

    def _close_file(self):
        if self._file is None:
            return
        path = self._current_path
        try:
            self._file.flush()
            self._file.close()
        except OSError as e:
            self._report_locked(f"Failed to close {path}", e)
        finally:
            self._file = None
            self._current_size = 0
        if self._config.enable_compression:
            self._queue_compression(path)

    def close(self):
        """Close the open file, if any. Safe to call repeatedly."""
        with self._lock:
            self._close_file()
        self._deliver_deferred()

    # -- background work ----------------------------------------------------

    def _queue_compression(self, path: Path):
        pending = path.with_name(path.name + COMPRESSING_SUFFIX)
        target = path.with_name(path.name + GZ_SUFFIX)
        try:
            os.replace(path, pending)
        except FileNotFoundError:
            return
        except OSError as e:
            self._report_locked(f"Could not stage {path} for compression", e)
            return
        self._compressor.submit(self._compress, pending, path, target)

    def _compress(self, pending: Path, plain: Path, target: Path):
        try:
            compress_file(pending, target, self._config.compression_buffer_size)
            logger.info("Compressed: %s", target)
        except Exception as e:
            self._report(f"Compression of {plain} failed, keeping uncompressed file", e)
            try:
                os.replace(pending, plain)
            except OSError:
                pass

    def _trigger_cleanup(self):
        cfg = self._config
        if cfg.max_file_count <= 0 and cfg.max_days_old <= 0:
            return
        self._cleanup.trigger(self._run_cleanup, self.directory_for(self._current_date),
                              self._current_path)

    def _run_cleanup(self, directory: Path, keep: Path):
        cfg = self._config
        try:
            enforce_retention(
                directory,
                cfg.base_name,
                cfg.plain_extension,
                max_file_count=cfg.max_file_count,
                max_days_old=cfg.max_days_old,
                compressed=cfg.enable_compression,
                now=self._clock(),
                keep=keep,
                policy=cfg.retry_policy,
                sleep=self._sleep,
            )
        except Exception as e:
            self._report("Retention cleanup failed", e)

    def wait_for_background(self, timeout: float | None = None) -> bool:
        """Wait for in-flight cleanup and queued compression. False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self._cleanup.wait(timeout):
            return False
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        return self._compressor.wait_idle(remaining)

    # -- lifecycle ----------------------------------------------------------

    def dispose(self):
        """Close the file, then wait (bounded) for background work to finish."""
        with self._lock:
            if self._disposed:
                return
            self._close_file()
            self._disposed = True
        self._deliver_deferred()

        timeout = self._config.dispose_timeout
        if not self._cleanup.wait(timeout):
            logger.warning("Cleanup for %s still running after %.1fs",
                           self._config.base_name, timeout)
        if not self._compressor.close(timeout):
            logger.warning("Compression for %s still running after %.1fs",
                           self._config.base_name, timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    # -- error reporting ----------------------------------------------------

    def _report(self, message: str, error: BaseException, level: int = logging.ERROR):
        # never called with self._lock held
        self._log_report(message, error, level)
        self._deliver_deferred()
        self._notify(message, error)

    def _report_locked(self, message: str, error: BaseException, level: int = logging.ERROR):
        # caller holds self._lock; on_error runs from _deliver_deferred once it is released
        self._log_report(message, error, level)
        if self._on_error is not None:
            self._deferred.append((message, error))

    def _deliver_deferred(self):
        if self._on_error is None:
            return
        with self._lock:
            pending, self._deferred = self._deferred, []
        for message, error in pending:
            self._notify(message, error)

    def _log_report(self, message: str, error: BaseException, level: int):
        try:
            logger.log(level, "%s: %s", message, error)
        except Exception:
            print(f"[logsink] {message}: {error}", file=sys.stderr)

    def _notify(self, message: str, error: BaseException):
        if self._on_error is None:
            return
        # A handler that writes back into this sink and fails again must not recurse.
        if getattr(self._in_callback, "active", False):
            return
        self._in_callback.active = True
        try:
            self._on_error(message, error)
        except Exception:
            print(f"[logsink] {message}: {error}", file=sys.stderr)
        finally:
            self._in_callback.active = False
