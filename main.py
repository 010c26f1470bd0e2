"""logsink demo service: emits synthetic events through the supervisor until stopped."""

import argparse
import logging
import random
import signal
import sys
import threading
import time

from logsink.categories import CategoryMask
from logsink.config import load_settings, load_yaml_config
from logsink.supervisor import StatusChange, Supervisor

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [logsink] %(levelname)s %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_running = True


def _signal_handler(sig, _frame):
    global _running
    logger.info("Shutdown signal received (signal %d), stopping...", sig)
    _running = False


CATEGORIES = [
    CategoryMask.INFORMATION, CategoryMask.INFORMATION, CategoryMask.INFORMATION,
    CategoryMask.DEBUG, CategoryMask.WARNING, CategoryMask.ERROR,
]
SOURCES = ["auth-api", "order-svc", "payment-gw", "user-svc", "catalog-api"]
MESSAGES = {
    CategoryMask.INFORMATION: [
        "Request processed successfully",
        "Cache hit for user session",
        "Database query completed in {}ms",
    ],
    CategoryMask.DEBUG: [
        "Entering request handler",
        "Token validation started",
    ],
    CategoryMask.WARNING: [
        "Slow query detected (>{}ms)",
        "Connection pool nearing capacity",
    ],
    CategoryMask.ERROR: [
        "Failed to connect to database",
        "Timeout waiting for upstream response",
    ],
}


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="logsink demo service")
    parser.add_argument("--config", default=None, help="Path to YAML settings file")
    parser.add_argument("--app-name", default=None, help="Log file base name (overrides config)")
    parser.add_argument("--rate", type=float, default=20.0, help="Events per second per thread")
    parser.add_argument("--threads", type=int, default=2, help="Number of writer threads")
    return parser


def _on_status(change: StatusChange):
    if change.error is not None:
        logger.warning("Logging status: %s (%s)", change.status.value, change.error)
    else:
        logger.info("Logging status: %s", change.status.value)


def _emit_events(supervisor: Supervisor, rate: float, stop: threading.Event):
    delay = 1.0 / rate if rate > 0 else 0.05
    while not stop.is_set():
        category = random.choice(CATEGORIES)
        source = random.choice(SOURCES)
        template = random.choice(MESSAGES[category])
        supervisor.dispatcher.write_format(category, source, template, random.randint(5, 900))
        stop.wait(delay)


def main(argv=None):
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    args = build_cli_parser().parse_args(argv)
    settings = load_settings(load_yaml_config(args.config))
    if args.app_name:
        settings = load_settings({"app_name": args.app_name}, env={}, base=settings)
    if not settings.app_name:
        settings = load_settings({"app_name": "logsink-demo"}, env={}, base=settings)

    supervisor = Supervisor(on_status=_on_status)
    if not supervisor.initialize(settings):
        logger.error("Could not initialize logging, exiting")
        return 1

    logger.info(
        "Writing to %s (max_size=%d bytes, max_days=%d, compression=%s)",
        settings.resolved_directory, settings.max_file_size,
        settings.max_days_old, settings.enable_compression,
    )

    stop = threading.Event()
    workers = [
        threading.Thread(target=_emit_events, args=(supervisor, args.rate, stop), daemon=True)
        for _ in range(max(1, args.threads))
    ]
    for t in workers:
        t.start()

    try:
        while _running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass

    stop.set()
    for t in workers:
        t.join(timeout=5)
    supervisor.close()
    logger.info("Shut down cleanly.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
