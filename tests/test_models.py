"""Tests for LogEvent and the tab-separated line format."""

import gzip
import re
import threading
from datetime import datetime, timedelta, timezone

import pytest

from logsink.categories import CategoryMask
from logsink.errors import EventFormatError
from logsink.models import (
    COLUMN_COUNT,
    HEADER,
    LogEvent,
    format_thread_id,
    format_timestamp,
    parse_event,
    read_events,
)

TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}[+-]\d{2}:\d{2}$")


class TestLogEventCreate:
    def test_fields(self, event_factory):
        event = event_factory("disk full", CategoryMask.ERROR, source="Disk")
        assert event.event_type == "Error"
        assert event.category == CategoryMask.ERROR
        assert event.source == "Disk"
        assert event.message == "disk full"
        assert event.thread_id == "0x1a2b"
        assert event.source_process == "tests.1234"
        assert event.timestamp.tzinfo == timezone.utc

    def test_defaults_to_current_thread(self):
        event = LogEvent.create(CategoryMask.INFORMATION, "Src", "msg")
        assert event.thread_id == format_thread_id(threading.get_native_id())
        assert "." in event.source_process

    def test_naive_timestamp_taken_as_local(self):
        naive = datetime(2025, 1, 15, 12, 0, 0)
        event = LogEvent.create(CategoryMask.DEBUG, "Src", "msg", timestamp=naive)
        assert event.timestamp == naive.astimezone().astimezone(timezone.utc)

    def test_string_thread_id_kept(self):
        event = LogEvent.create(CategoryMask.DEBUG, "Src", "msg", thread_id="worker-7")
        assert event.thread_id == "worker-7"

    def test_clone_is_equal_but_distinct(self, event_factory):
        event = event_factory()
        copy = event.clone()
        assert copy == event
        assert copy is not event


class TestFormatting:
    def test_thread_id_is_zero_padded_hex(self):
        assert format_thread_id(1) == "0x0001"
        assert format_thread_id(0xABCDE) == "0xabcde"

    def test_timestamp_shape(self):
        text = format_timestamp(datetime(2025, 1, 15, 12, 0, 0, 123456, tzinfo=timezone.utc))
        assert TIMESTAMP_RE.match(text)
        assert ".123" in text

    def test_serialize_has_seven_columns(self, event_factory):
        line = event_factory("disk full").serialize()
        columns = line.split("\t")
        assert len(columns) == COLUMN_COUNT
        assert TIMESTAMP_RE.match(columns[0])
        assert columns[2] == "0x1a2b"
        assert columns[3] == "tests.1234"
        assert columns[4] == "Test"
        assert columns[5] == "Error"
        assert columns[6] == "disk full"

    def test_control_characters_escaped(self, event_factory):
        line = event_factory("a\tb\nc\\d\re").serialize()
        assert "\n" not in line and "\r" not in line
        assert len(line.split("\t")) == COLUMN_COUNT
        assert line.split("\t")[6] == "a\\tb\\nc\\\\d\\re"

    def test_header_columns(self):
        assert HEADER.split("\t") == [
            "UtcTimestamp", "Microseconds", "ThreadId", "SourceProcess",
            "Source", "Type", "Message",
        ]


class TestParse:
    def test_round_trip(self, event_factory):
        event = event_factory("multi\tline\nmessage", CategoryMask.WARNING)
        parsed = LogEvent.parse(event.serialize())
        assert parsed.message == event.message
        assert parsed.source == event.source
        assert parsed.thread_id == event.thread_id
        assert parsed.source_process == event.source_process
        assert parsed.microseconds == event.microseconds
        assert parsed.event_type == "Warning"
        assert parsed.category == CategoryMask.WARNING
        # Timestamps are written at millisecond precision.
        assert abs(parsed.timestamp - event.timestamp) < timedelta(milliseconds=1)

    def test_wrong_column_count_raises(self):
        with pytest.raises(EventFormatError):
            LogEvent.parse("only\tthree\tcolumns")

    def test_bad_microseconds_raises(self, event_factory):
        columns = event_factory().serialize().split("\t")
        columns[1] = "not-a-number"
        with pytest.raises(EventFormatError):
            LogEvent.parse("\t".join(columns))

    def test_format_error_is_value_error(self):
        with pytest.raises(ValueError):
            LogEvent.parse("garbage")

    def test_parse_event_skips_header_and_garbage(self):
        assert parse_event(HEADER + "\n") is None
        assert parse_event("garbage") is None


class TestReadEvents:
    def _lines(self, events):
        return HEADER + "\n" + "".join(e.serialize() + "\n" for e in events)

    def test_plain_file(self, tmp_path, event_factory):
        events = [event_factory(f"msg {i}") for i in range(3)]
        path = tmp_path / "app_20250115_1.log"
        path.write_text(self._lines(events) + "broken line\n", encoding="utf-8")

        read = list(read_events(path))

        assert [e.message for e in read] == ["msg 0", "msg 1", "msg 2"]

    def test_gzip_file(self, tmp_path, event_factory):
        events = [event_factory("first\nsecond")]
        path = tmp_path / "app_20250115_1.log.gz"
        with gzip.open(path, "wt", encoding="utf-8") as f:
            f.write(self._lines(events))

        read = list(read_events(path))

        assert len(read) == 1
        assert read[0].message == "first\nsecond"
