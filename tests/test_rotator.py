"""Tests for file naming, compression and retention."""

import gzip
import os
import shutil
import stat
import tempfile
import time
import unittest
from datetime import date, datetime, timedelta, timezone

import pytest

from logsink.retry import RetryPolicy
from logsink.rotator import (
    build_file_name,
    choose_file_path,
    compress_file,
    delete_with_retry,
    enforce_retention,
    list_log_files,
)

DAY = date(2025, 1, 15)


class _TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _touch(self, name, content=b"x", age_days=0.0):
        path = os.path.join(self.tmpdir, name)
        with open(path, "wb") as f:
            f.write(content)
        if age_days:
            ts = time.time() - age_days * 86400
            os.utime(path, (ts, ts))
        return path


class TestNaming(_TempDirTestCase):
    def test_build_file_name(self):
        self.assertEqual(build_file_name("app", DAY, 1, ".log"), "app_20250115_1.log")
        self.assertEqual(build_file_name("svc", DAY, 12, ".txt"), "svc_20250115_12.txt")

    def test_first_sequence_when_empty(self):
        path = choose_file_path(self.tmpdir, "app", DAY, ".log", 100)
        self.assertEqual(path.name, "app_20250115_1.log")

    def test_resumes_file_under_size(self):
        self._touch("app_20250115_1.log", b"x" * 10)
        path = choose_file_path(self.tmpdir, "app", DAY, ".log", 100)
        self.assertEqual(path.name, "app_20250115_1.log")

    def test_skips_full_files(self):
        self._touch("app_20250115_1.log", b"x" * 100)
        self._touch("app_20250115_2.log", b"x" * 150)
        path = choose_file_path(self.tmpdir, "app", DAY, ".log", 100)
        self.assertEqual(path.name, "app_20250115_3.log")

    def test_skips_compressed_and_in_flight_sequences(self):
        self._touch("app_20250115_1.log.gz")
        self._touch("app_20250115_2.log.tmp")
        path = choose_file_path(self.tmpdir, "app", DAY, ".log", 100, compressed=True)
        self.assertEqual(path.name, "app_20250115_3.log")

    def test_gz_ignored_without_compression(self):
        self._touch("app_20250115_1.log.gz")
        path = choose_file_path(self.tmpdir, "app", DAY, ".log", 100)
        self.assertEqual(path.name, "app_20250115_1.log")


class TestCompressFile(_TempDirTestCase):
    def test_creates_gz_and_removes_source(self):
        content = b"line one\nline two\n" * 50
        source = self._touch("app_20250115_1.log.tmp", content)
        dest = os.path.join(self.tmpdir, "app_20250115_1.log.gz")

        result = compress_file(source, dest)

        self.assertEqual(result, dest)
        self.assertFalse(os.path.exists(source))
        with gzip.open(dest, "rb") as f:
            self.assertEqual(f.read(), content)

    def test_missing_source_leaves_no_partial_output(self):
        source = os.path.join(self.tmpdir, "missing.log")
        dest = os.path.join(self.tmpdir, "missing.log.gz")

        with self.assertRaises(FileNotFoundError):
            compress_file(source, dest)

        self.assertFalse(os.path.exists(dest))


class TestListLogFiles(_TempDirTestCase):
    def test_filters_and_orders_newest_first(self):
        self._touch("app_20250113_1.log", age_days=3)
        self._touch("app_20250115_1.log", age_days=1)
        self._touch("app_20250114_1.log.gz", age_days=2)
        self._touch("other_20250115_1.log")
        self._touch("app_extra_20250115_1.log")
        self._touch("app_20250115_1.log.tmp")

        plain = [p.name for p in list_log_files(self.tmpdir, "app", ".log")]
        both = [p.name for p in list_log_files(self.tmpdir, "app", ".log", compressed=True)]

        self.assertEqual(plain, ["app_20250115_1.log", "app_20250113_1.log"])
        self.assertEqual(both, [
            "app_20250115_1.log", "app_20250114_1.log.gz", "app_20250113_1.log",
        ])

    def test_missing_directory(self):
        self.assertEqual(list_log_files(os.path.join(self.tmpdir, "nope"), "app", ".log"), [])


class TestEnforceRetention(_TempDirTestCase):
    def test_count_limit_deletes_oldest(self):
        for i in range(5):
            self._touch(f"app_20250110_{i + 1}.log", age_days=5 - i)

        deleted = enforce_retention(self.tmpdir, "app", ".log", max_file_count=2)

        self.assertEqual(sorted(deleted), [
            "app_20250110_1.log", "app_20250110_2.log", "app_20250110_3.log",
        ])
        self.assertEqual(sorted(os.listdir(self.tmpdir)), [
            "app_20250110_4.log", "app_20250110_5.log",
        ])

    def test_age_limit_applies_within_count(self):
        self._touch("app_20241201_1.log", age_days=31)
        self._touch("app_20250115_1.log", age_days=1)

        deleted = enforce_retention(self.tmpdir, "app", ".log",
                                    max_file_count=10, max_days_old=30)

        self.assertEqual(deleted, ["app_20241201_1.log"])
        self.assertEqual(os.listdir(self.tmpdir), ["app_20250115_1.log"])

    def test_zero_limits_delete_nothing(self):
        self._touch("app_20241201_1.log", age_days=400)
        self.assertEqual(enforce_retention(self.tmpdir, "app", ".log"), [])

    def test_kept_file_never_deleted(self):
        keep = self._touch("app_20250101_1.log", age_days=60)
        self._touch("app_20250102_1.log", age_days=1)
        self._touch("app_20250103_1.log", age_days=2)

        deleted = enforce_retention(self.tmpdir, "app", ".log",
                                    max_file_count=1, max_days_old=30, keep=keep)

        self.assertTrue(os.path.exists(keep))
        self.assertEqual(deleted, ["app_20250103_1.log"])

    def test_compressed_files_included(self):
        self._touch("app_20241201_1.log.gz", age_days=40)
        self._touch("app_20250115_1.log", age_days=0.1)

        deleted = enforce_retention(self.tmpdir, "app", ".log", max_days_old=30,
                                    compressed=True)

        self.assertEqual(deleted, ["app_20241201_1.log.gz"])

    def test_uses_supplied_now(self):
        self._touch("app_20250115_1.log")
        future = datetime.now(timezone.utc) + timedelta(days=45)

        deleted = enforce_retention(self.tmpdir, "app", ".log", max_days_old=30, now=future)

        self.assertEqual(deleted, ["app_20250115_1.log"])


class TestDeleteWithRetry(_TempDirTestCase):
    def test_deletes_read_only_file(self):
        path = self._touch("app_20250115_1.log")
        os.chmod(path, stat.S_IREAD)

        self.assertTrue(delete_with_retry(path, sleep=lambda _: None))
        self.assertFalse(os.path.exists(path))

    def test_missing_file_is_not_an_error(self):
        path = os.path.join(self.tmpdir, "gone.log")
        self.assertFalse(delete_with_retry(path, sleep=lambda _: None))


class TestDeleteRetries:
    def test_transient_failures_retried(self, tmp_path, monkeypatch):
        path = tmp_path / "app_20250115_1.log"
        path.write_text("x")
        real_remove = os.remove
        failures = {"left": 2}
        sleeps = []

        def flaky_remove(p):
            if failures["left"]:
                failures["left"] -= 1
                raise PermissionError("locked")
            real_remove(p)

        monkeypatch.setattr(os, "remove", flaky_remove)

        assert delete_with_retry(path, RetryPolicy(), sleep=sleeps.append)
        assert not path.exists()
        assert sleeps == pytest.approx([0.1, 0.2])

    def test_gives_up_after_attempts(self, tmp_path, monkeypatch):
        path = tmp_path / "app_20250115_1.log"
        path.write_text("x")

        def locked(p):
            raise PermissionError("locked")

        monkeypatch.setattr(os, "remove", locked)

        assert not delete_with_retry(path, RetryPolicy(), sleep=lambda _: None)
        assert path.exists()
