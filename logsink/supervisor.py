"""Lifecycle management for the logging core, plus a periodic health check.

The supervisor builds the file (and optional console) sink from
InitSettings, registers them with its dispatcher, and tears them down
again on shutdown. An APScheduler background scheduler runs the health
check; a failed check with auto-restart on schedules a delayed
reinitialize as a one-off job so the timer callback never blocks.
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, TextIO

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from logsink.categories import CategoryMask
from logsink.config import InitSettings
from logsink.console_sink import ConsoleSink
from logsink.dispatcher import Dispatcher
from logsink.errors import ConfigurationError, NotInitializedError
from logsink.file_sink import FileSink
from logsink.memory_sink import MemorySink
from logsink.sink import Disposable

logger = logging.getLogger(__name__)

HEALTH_SOURCE = "Supervisor.HealthCheck"
HEALTH_JOB_ID = "logsink-health-check"
RESTART_JOB_ID = "logsink-restart"


class Status(Enum):
    INITIALIZED = "Initialized"
    INITIALIZATION_FAILED = "InitializationFailed"
    SHUT_DOWN = "ShutDown"
    SHUTDOWN_FAILED = "ShutdownFailed"
    UNHEALTHY = "Unhealthy"


class SupervisorState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    SHUT_DOWN = "shut_down"


@dataclass(frozen=True)
class StatusChange:
    status: Status
    error: BaseException | None = None


class Supervisor:
    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        on_status: Callable[[StatusChange], None] | None = None,
        scheduler: BackgroundScheduler | None = None,
        console_stream: TextIO | None = None,
        shutdown_wait: float = 0.5,
    ):
        self.dispatcher = dispatcher if dispatcher is not None else Dispatcher()
        self._on_status = on_status
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._console_stream = console_stream
        self._shutdown_wait = shutdown_wait

        self._lock = threading.RLock()
        self._shutdown_idle = threading.Event()
        self._shutdown_idle.set()
        self._initialized = False
        self._settings: InitSettings | None = None
        self._state = SupervisorState.UNINITIALIZED
        self._file_sink: FileSink | None = None
        self._health_check_enabled = False
        self._auto_restart = True
        self._health_interval = 300.0
        self._restart_delay = 3.0

    # -- properties ---------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def settings(self) -> InitSettings | None:
        return self._settings

    @property
    def file_sink(self) -> FileSink | None:
        return self._file_sink

    @property
    def health_check_enabled(self) -> bool:
        return self._health_check_enabled

    @health_check_enabled.setter
    def health_check_enabled(self, value: bool):
        with self._lock:
            if self._health_check_enabled != value:
                self._health_check_enabled = value
                self._update_health_job()

    @property
    def auto_restart_enabled(self) -> bool:
        return self._auto_restart

    @auto_restart_enabled.setter
    def auto_restart_enabled(self, value: bool):
        self._auto_restart = value

    # -- lifecycle ----------------------------------------------------------

    def initialize(self, settings: InitSettings) -> bool:
        """Build and register sinks from ``settings``. Never raises."""
        try:
            settings.validate()
        except ConfigurationError as e:
            logger.error("Logging initialization failed: %s", e)
            self._emit(Status.INITIALIZATION_FAILED, e)
            return False

        if not self._shutdown_idle.wait(self._shutdown_wait):
            logger.warning("Previous shutdown still running after %.1fs", self._shutdown_wait)

        with self._lock:
            if self._initialized:
                self.shutdown(clear_settings=False)

            created = []
            try:
                directory = settings.resolved_directory
                os.makedirs(directory, exist_ok=True)
                file_sink = FileSink(settings.file_sink_config())
                created.append(file_sink)
                if settings.log_to_console:
                    created.append(ConsoleSink(settings.enabled_categories, stream=self._console_stream))
                self.dispatcher.enabled_categories = settings.enabled_categories
                for sink in created:
                    self.dispatcher.registry.add(sink)
            except Exception as e:
                for sink in created:
                    self.dispatcher.registry.remove(sink)
                    if isinstance(sink, Disposable):
                        sink.dispose()
                logger.error("Logging initialization failed: %s", e)
                self._emit(Status.INITIALIZATION_FAILED, e)
                return False

            self._file_sink = file_sink
            self._settings = settings
            self._initialized = True
            self._state = SupervisorState.INITIALIZED
            self._health_check_enabled = settings.health_check_enabled
            self._health_interval = settings.health_check_interval
            self._auto_restart = settings.auto_restart
            self._restart_delay = settings.restart_delay
            self._update_health_job()

            logger.info(
                "Logging initialized: app=%s, dir=%s, max_file_size=%dKB, max_days_old=%d, compression=%s",
                settings.app_name, directory, settings.max_file_size // 1024,
                settings.max_days_old, "on" if settings.enable_compression else "off",
            )

        self._emit(Status.INITIALIZED)
        return True

    def reinitialize(self) -> bool:
        """Run :meth:`initialize` again with the last successful settings."""
        settings = self._settings
        if settings is None:
            logger.warning("Cannot reinitialize: no previous settings")
            return False
        return self.initialize(settings)

    def shutdown(self, clear_settings: bool = True):
        """Dispose every registered sink and clear the registry.

        Only one shutdown runs at a time; a concurrent call returns at once.
        ``clear_settings=False`` keeps the settings for :meth:`reinitialize`.
        """
        with self._lock:
            if not self._initialized or not self._shutdown_idle.is_set():
                return
            self._shutdown_idle.clear()
            self._cancel_jobs()
            logger.info("Shutting down logging system")
            sinks = self.dispatcher.registry.clear()
            self._initialized = False
            self._file_sink = None
            if clear_settings:
                self._settings = None
            self._state = SupervisorState.SHUT_DOWN

        error = None
        try:
            for sink in sinks:
                if not isinstance(sink, Disposable):
                    continue
                try:
                    sink.dispose()
                except Exception as e:
                    logger.error("Failed to dispose %s: %s", type(sink).__name__, e)
                    error = error or e
        finally:
            self._shutdown_idle.set()

        if error is None:
            self._emit(Status.SHUT_DOWN)
        else:
            self._emit(Status.SHUTDOWN_FAILED, error)

    def close(self):
        """Shut down and stop the scheduler this supervisor created."""
        self.shutdown()
        if self._owns_scheduler and self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=True)
        self._scheduler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def add_memory_sink(self, max_events: int = 1000) -> MemorySink:
        with self._lock:
            if not self._initialized:
                raise NotInitializedError("Cannot add a memory sink before initialize()")
            sink = MemorySink(max_events, enabled_categories=self.dispatcher.enabled_categories)
            self.dispatcher.registry.add(sink)
            return sink

    # -- health check -------------------------------------------------------

    def check_health(self) -> bool:
        """Probe the sinks with a debug write and record the outcome."""
        healthy = False
        if self._initialized:
            try:
                healthy = self.dispatcher.debug(HEALTH_SOURCE, "Logging system health check")
            except Exception:
                logger.exception("Health check write raised")
        with self._lock:
            was_unhealthy = self._state == SupervisorState.UNHEALTHY
            if self._initialized:
                self._state = SupervisorState.HEALTHY if healthy else SupervisorState.UNHEALTHY
        if not healthy and not was_unhealthy:
            logger.warning("Logging system is unhealthy")
            self._emit(Status.UNHEALTHY)
        return healthy

    def _run_health_check(self):
        try:
            if not self.check_health() and self._auto_restart and self._settings is not None:
                self._schedule_restart()
        except Exception:
            logger.exception("Health check failed")

    def _schedule_restart(self):
        run_date = datetime.now(timezone.utc) + timedelta(seconds=self._restart_delay)
        logger.info("Scheduling logging reinitialize in %.1fs", self._restart_delay)
        self._ensure_scheduler().add_job(
            self._restart, "date", run_date=run_date,
            id=RESTART_JOB_ID, replace_existing=True,
        )

    def _restart(self):
        if not self.reinitialize():
            logger.error("Automatic reinitialize failed")

    # -- scheduler helpers (callers hold self._lock where noted) ------------

    def _ensure_scheduler(self) -> BackgroundScheduler:
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(daemon=True)
        if not self._scheduler.running:
            self._scheduler.start()
        return self._scheduler

    def _update_health_job(self):
        # caller holds self._lock
        if self._health_check_enabled and self._initialized:
            self._ensure_scheduler().add_job(
                self._run_health_check, "interval", seconds=self._health_interval,
                id=HEALTH_JOB_ID, replace_existing=True,
                max_instances=1, coalesce=True,
            )
        else:
            self._remove_job(HEALTH_JOB_ID)

    def _cancel_jobs(self):
        self._remove_job(HEALTH_JOB_ID)
        self._remove_job(RESTART_JOB_ID)

    def _remove_job(self, job_id: str):
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def _emit(self, status: Status, error: BaseException | None = None):
        if self._on_status is None:
            return
        try:
            self._on_status(StatusChange(status, error))
        except Exception:
            logger.debug("Status observer raised", exc_info=True)

    # -- conveniences -------------------------------------------------------

    def debug(self, source: str, message: str, *args) -> bool:
        return self.dispatcher.debug(source, message, *args)

    def info(self, source: str, message: str, *args) -> bool:
        return self.dispatcher.info(source, message, *args)

    def warning(self, source: str, message: str, *args) -> bool:
        return self.dispatcher.warning(source, message, *args)

    def error(self, source: str, message: str, *args) -> bool:
        return self.dispatcher.error(source, message, *args)

    def exception(self, source: str, exc: BaseException, message: str | None = None,
                  method: str | None = None) -> bool:
        return self.dispatcher.exception(source, exc, message, method)

    def write(self, category: CategoryMask, source: str, message: str,
              thread_id: int | str | None = None, event_type: str | None = None) -> bool:
        return self.dispatcher.write(category, source, message,
                                     thread_id=thread_id, event_type=event_type)
