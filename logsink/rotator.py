"""File naming, gzip compression and retention enforcement for the file sink."""

import gzip
import logging
import os
import re
import shutil
import stat
import time
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from logsink.retry import RetryPolicy, retry_io

logger = logging.getLogger(__name__)

GZ_SUFFIX = ".gz"
COMPRESSING_SUFFIX = ".tmp"


def build_file_name(base_name: str, day: date, seq: int, extension: str) -> str:
    return f"{base_name}_{day:%Y%m%d}_{seq}{extension}"


def choose_file_path(
    directory: str | os.PathLike,
    base_name: str,
    day: date,
    extension: str,
    max_file_size: int,
    compressed: bool = False,
) -> Path:
    """Pick the first sequence number that is unused or can be resumed.

    A file that exists but is still under ``max_file_size`` is resumed. With
    compression on, a sequence whose ``.gz`` or in-flight ``.tmp`` file exists
    is already closed and is skipped.
    """
    directory = Path(directory)
    seq = 1
    while True:
        path = directory / build_file_name(base_name, day, seq, extension)
        seq += 1
        if compressed and (
            path.with_name(path.name + GZ_SUFFIX).exists()
            or path.with_name(path.name + COMPRESSING_SUFFIX).exists()
        ):
            continue
        try:
            if path.stat().st_size >= max_file_size:
                continue
        except FileNotFoundError:
            pass
        return path


def compress_file(source: str | os.PathLike, destination: str | os.PathLike,
                  buffer_size: int = 80 * 1024) -> str:
    """Gzip ``source`` into ``destination`` and remove ``source``.

    On failure a partial ``destination`` is removed and ``source`` is left
    untouched before the error is re-raised.
    """
    source, destination = os.fspath(source), os.fspath(destination)
    try:
        with open(source, "rb") as f_in, gzip.open(destination, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out, buffer_size)
        if os.path.getsize(destination) == 0:
            raise OSError(f"Compressed file {destination} is empty")
    except Exception:
        try:
            os.remove(destination)
        except OSError:
            pass
        raise
    os.remove(source)
    return destination


def log_file_pattern(base_name: str, extension: str, compressed: bool) -> re.Pattern:
    suffix = re.escape(extension) + (f"(?:{re.escape(GZ_SUFFIX)})?" if compressed else "")
    return re.compile(rf"^{re.escape(base_name)}_\d{{8}}_\d+{suffix}$")


def list_log_files(directory: str | os.PathLike, base_name: str, extension: str,
                   compressed: bool = False) -> list[Path]:
    """Return this sink's files (plus ``.gz`` variants if compressed), newest first."""
    directory = Path(directory)
    pattern = log_file_pattern(base_name, extension, compressed)
    entries = []
    try:
        names = os.listdir(directory)
    except FileNotFoundError:
        return []
    for name in names:
        if not pattern.match(name):
            continue
        path = directory / name
        try:
            entries.append((path.stat().st_mtime, path))
        except FileNotFoundError:
            continue
    entries.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in entries]


def delete_with_retry(path: str | os.PathLike, policy: RetryPolicy | None = None,
                      sleep: Callable[[float], None] = time.sleep) -> bool:
    """Delete a file, clearing read-only first and retrying transient errors.

    Returns True if the file was removed, False if it was already gone or
    could not be removed.
    """
    policy = policy or RetryPolicy()
    path = os.fspath(path)

    def _delete():
        try:
            os.chmod(path, stat.S_IREAD | stat.S_IWRITE)
            os.remove(path)
        except FileNotFoundError:
            return False
        return True

    try:
        return retry_io(_delete, policy, policy.budget(sleep))
    except OSError as e:
        logger.warning("Failed to delete %s: %s", path, e)
        return False


def enforce_retention(
    directory: str | os.PathLike,
    base_name: str,
    extension: str,
    max_file_count: int = 0,
    max_days_old: int = 0,
    compressed: bool = False,
    now: datetime | None = None,
    keep: str | os.PathLike | None = None,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[str]:
    """Delete files beyond ``max_file_count`` and files older than ``max_days_old``.

    The two passes run over the same newest-first listing and may overlap;
    a file already removed by the first pass is skipped silently. ``keep``
    (normally the open file) is never deleted. Returns deleted file names.
    """
    now = now or datetime.now(timezone.utc)
    keep_path = Path(keep).resolve() if keep is not None else None
    files = list_log_files(directory, base_name, extension, compressed)
    deleted: list[str] = []

    def _remove(path: Path):
        if keep_path is not None and path.resolve() == keep_path:
            return
        if delete_with_retry(path, policy, sleep):
            deleted.append(path.name)

    if max_file_count > 0:
        for path in files[max_file_count:]:
            _remove(path)

    if max_days_old > 0:
        cutoff = (now - timedelta(days=max_days_old)).timestamp()
        for path in files:
            try:
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                continue
            if mtime < cutoff:
                _remove(path)

    if deleted:
        logger.info("Purged %d file(s): %s", len(deleted), ", ".join(deleted))
    return deleted
