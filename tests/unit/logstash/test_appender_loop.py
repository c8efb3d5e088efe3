"""
Tests for the Logstash appender loop.

Tests per-entry failure handling: overflow is counted silently,
serialization and transport failures are logged, the loop never stops early.
"""

import asyncio
import io
from typing import Any, Dict, List

import pytest
from structlog.testing import capture_logs

from conftest import FailingWriter, RecordingWriter, closed_channel
from servicelog.core.appender import AppenderState, EntryChannel
from servicelog.core.exceptions import (
    RateLimitExceededError,
    SizeLimitExceededError,
    TransportError,
)
from servicelog.core.logstash import LogstashAppender, new_logstash_appender
from servicelog.core.metrics import MetricsRegistry


def warnings(logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [log for log in logs if log["log_level"] == "warning"]


class TestAppenderLoop:
    """Test the consume-until-closed loop."""

    @pytest.mark.asyncio
    async def test_writes_every_entry(
        self, output: io.BytesIO, metrics_registry: MetricsRegistry
    ) -> None:
        """Test entries are written in order, one line each."""

        appender = new_logstash_appender(output, registry=metrics_registry)
        await appender.append(closed_channel([
            {"time": "t1", "msg": "first"},
            {"time": "t2", "msg": "second"},
        ]))
        assert output.getvalue() == (
            b'{"@timestamp":"t1","@version":1,"message":"first"}\n'
            b'{"@timestamp":"t2","@version":1,"message":"second"}\n'
        )

    @pytest.mark.asyncio
    async def test_state_transitions(
        self, output: io.BytesIO, metrics_registry: MetricsRegistry
    ) -> None:
        """Test the appender goes idle -> terminated once the channel closes."""

        appender = new_logstash_appender(output, registry=metrics_registry)
        assert appender.state == AppenderState.IDLE
        await appender.append(closed_channel([]))
        assert appender.state == AppenderState.TERMINATED

    @pytest.mark.asyncio
    async def test_size_overflow_counted_not_logged(
        self, metrics_registry: MetricsRegistry
    ) -> None:
        """Test size overflow bumps only the size counter."""

        writer = FailingWriter(SizeLimitExceededError(size=100, limit=10))
        appender = LogstashAppender(writer, registry=metrics_registry)
        with capture_logs() as logs:
            await appender.append(closed_channel([{"time": "t", "msg": "m"}]))
        assert appender.dropped_by_size == 1
        assert appender.dropped_by_rate == 0
        assert warnings(logs) == []

    @pytest.mark.asyncio
    async def test_rate_overflow_counted_not_logged(
        self, metrics_registry: MetricsRegistry
    ) -> None:
        """Test rate overflow bumps only the rate counter."""

        writer = FailingWriter(RateLimitExceededError(limit=1))
        appender = LogstashAppender(writer, registry=metrics_registry)
        with capture_logs() as logs:
            await appender.append(closed_channel([
                {"time": "t", "msg": "a"},
                {"time": "t", "msg": "b"},
            ]))
        assert appender.dropped_by_rate == 2
        assert appender.dropped_by_size == 0
        assert warnings(logs) == []

    @pytest.mark.asyncio
    async def test_transport_error_logged(self, metrics_registry: MetricsRegistry) -> None:
        """Test a broken connection is logged and counters stay untouched."""

        writer = FailingWriter(ConnectionResetError("connection reset by peer"))
        appender = LogstashAppender(writer, registry=metrics_registry)
        with capture_logs() as logs:
            await appender.append(closed_channel([
                {"time": "t", "msg": "a"},
                {"time": "t", "msg": "b"},
            ]))
        assert writer.calls == 2
        assert appender.dropped_by_rate == 0
        assert appender.dropped_by_size == 0
        logged = warnings(logs)
        assert len(logged) == 2
        assert logged[0]["event"] == "Error appending logs."
        assert logged[0]["error_code"] == "transport_error"
        assert "connection reset by peer" in logged[0]["error"]

    @pytest.mark.asyncio
    async def test_serialization_error_logged_and_skipped(
        self, output: io.BytesIO, metrics_registry: MetricsRegistry
    ) -> None:
        """Test an unencodable entry is dropped while later entries go out."""

        appender = new_logstash_appender(output, registry=metrics_registry)
        with capture_logs() as logs:
            await appender.append(closed_channel([
                {"time": "t1", "msg": "bad", "value": float("nan")},
                {"time": "t2", "msg": "good"},
            ]))
        assert output.getvalue() == b'{"@timestamp":"t2","@version":1,"message":"good"}\n'
        logged = warnings(logs)
        assert len(logged) == 1
        assert logged[0]["error_code"] == "serialization_error"

    @pytest.mark.asyncio
    async def test_non_mapping_entry_skipped(
        self, output: io.BytesIO, metrics_registry: MetricsRegistry
    ) -> None:
        """Test an entry that is not a mapping does not stop the loop."""

        appender = new_logstash_appender(output, registry=metrics_registry)
        with capture_logs() as logs:
            await appender.append(closed_channel([None, {"time": "t", "msg": "ok"}]))  # type: ignore[list-item]
        assert output.getvalue().count(b"\n") == 1
        assert len(warnings(logs)) == 1

    @pytest.mark.asyncio
    async def test_transport_error_passed_through(self, metrics_registry: MetricsRegistry) -> None:
        """Test TransportError from the writer is not wrapped twice."""

        error = TransportError("broken pipe")
        appender = LogstashAppender(FailingWriter(error), registry=metrics_registry)
        with pytest.raises(TransportError) as exc_info:
            appender.send_entry({"time": "t", "msg": "m"})
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_debug_log_per_entry(
        self, output: io.BytesIO, metrics_registry: MetricsRegistry
    ) -> None:
        """Test each entry sent is logged at debug level."""

        appender = new_logstash_appender(output, registry=metrics_registry)
        with capture_logs() as logs:
            await appender.append(closed_channel([{"time": "t", "msg": "m"}]))
        sent = [log for log in logs if log["event"] == "Sending log entry to Logstash"]
        assert len(sent) == 1
        assert sent[0]["log_level"] == "debug"
        assert sent[0]["entry"] == '{"@timestamp":"t","@version":1,"message":"m"}\n'

    @pytest.mark.asyncio
    async def test_loop_waits_for_channel_close(
        self, metrics_registry: MetricsRegistry
    ) -> None:
        """Test the loop keeps running until the producer closes the channel."""

        writer = RecordingWriter()
        appender = new_logstash_appender(writer, registry=metrics_registry)
        channel = EntryChannel()
        task = asyncio.create_task(appender.append(channel))

        await channel.put({"time": "t1", "msg": "one"})
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert appender.state == AppenderState.RUNNING
        assert not task.done()

        await channel.put({"time": "t2", "msg": "two"})
        channel.close()
        await asyncio.wait_for(task, timeout=1)
        assert len(writer.writes) == 2
        assert appender.state == AppenderState.TERMINATED
