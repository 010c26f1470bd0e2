"""Shared fixtures for logsink tests."""

from datetime import datetime

import pytest

from logsink.categories import CategoryMask
from logsink.models import LogEvent


@pytest.fixture
def event_factory():
    """Return a builder for events stamped at local noon on a fixed day."""

    def _make(message="hello", category=CategoryMask.ERROR, source="Test",
              day=datetime(2025, 1, 15, 12, 0, 0), thread_id=0x1A2B):
        return LogEvent.create(category, source, message, thread_id=thread_id,
                               source_process="tests.1234", timestamp=day)

    return _make
