"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

import io
import os
from typing import Any, Dict, Generator, List
from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from servicelog.config import get_settings
from servicelog.core.appender import EntryChannel
from servicelog.core.metrics import MetricsRegistry


class RecordingWriter:
    """Writer keeping every buffer it accepted."""

    def __init__(self) -> None:
        self.writes: List[bytes] = []

    def write(self, data: bytes) -> int:
        self.writes.append(data)
        return len(data)


class FailingWriter:
    """Writer raising the given exception on every write."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    def write(self, data: bytes) -> int:
        self.calls += 1
        raise self.error


def closed_channel(entries: List[Dict[str, Any]]) -> EntryChannel:
    """Channel already holding ``entries`` and closed."""
    channel = EntryChannel()
    for entry in entries:
        channel.put_nowait(entry)
    channel.close()
    return channel


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Metrics registry isolated from the process-wide one."""
    return MetricsRegistry(CollectorRegistry())


@pytest.fixture
def output() -> io.BytesIO:
    """In-memory stream standing in for the Logstash connection."""
    return io.BytesIO()


@pytest.fixture
def recording_writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Remove servicelog variables from the environment for the test."""
    with patch.dict(os.environ, {}, clear=False):
        for key in list(os.environ):
            if key.upper().startswith("ALLEGRO_EXECUTOR_SERVICELOG_"):
                del os.environ[key]
        get_settings.cache_clear()
        yield
    get_settings.cache_clear()


@pytest.fixture
def valid_log_entry() -> Dict[str, Any]:
    """Sample service log entry."""
    return {
        "time": "2024-01-01T00:00:00Z",
        "msg": "hello",
        "level": "info",
        "service": "billing",
        "attempt": 3,
        "tags": ["a", "b"],
    }
