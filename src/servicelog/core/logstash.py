"""
Logstash appender.

Sends service log entries to Logstash as line-delimited JSON over a
writer. Writers may be decorated with rate and size limits; entries
rejected by a limit are dropped and counted instead of logged.
"""

import json
from datetime import date, datetime
from typing import Any, AsyncIterable, Callable, Dict, Mapping, Optional

import structlog
from prometheus_client import Counter

from ..models.entry import LogEntry, WireEntry
from .appender import AppenderState
from .exceptions import (
    ConfigurationError,
    LimitExceededError,
    OverflowKind,
    SerializationError,
    ServiceLogException,
    TransportError,
)
from .metrics import MetricsRegistry, get_metrics_registry
from .writers import Writer, decorate_writer, rate_limit, size_limit

logger = structlog.get_logger(__name__)

LOGSTASH_VERSION = 1
DROPPED_METRIC_PREFIX = "servicelog.logstash.dropped"


def dropped_metric_name(kind: OverflowKind) -> str:
    return f"{DROPPED_METRIC_PREFIX}.{kind.value}"


def format_entry(entry: Mapping[str, Any]) -> WireEntry:
    """Map a service log entry onto the Logstash schema."""
    formatted: WireEntry = {
        "@timestamp": entry.get("time"),
        "@version": LOGSTASH_VERSION,
        "message": entry.get("msg"),
    }

    for key, value in entry.items():
        if key in ("msg", "time"):
            continue
        formatted[key] = value

    return formatted


def _encode_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def marshal(entry: WireEntry) -> bytes:
    """
    Encode a wire entry as one JSON line.

    Logstash reads its input line by line, so every entry ends with a newline.
    """
    try:
        encoded = json.dumps(
            entry,
            allow_nan=False,
            ensure_ascii=False,
            separators=(",", ":"),
            default=_encode_default,
        ).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(
            f"unable to marshal log entry: {e}",
            details={"error_type": type(e).__name__},
        ) from e
    return encoded + b"\n"


class LogstashAppender:
    """
    Appender forwarding entries to Logstash.

    Entries are processed one at a time: format, marshal, write. A failing
    entry is dropped and the loop moves on to the next one.
    """

    def __init__(self, writer: Writer, registry: Optional[MetricsRegistry] = None) -> None:
        self.writer = writer
        self.registry = registry if registry is not None else get_metrics_registry()
        self.state = AppenderState.IDLE

        self.dropped: Dict[OverflowKind, Counter] = {
            kind: self.registry.get_or_register_counter(
                dropped_metric_name(kind),
                f"Log entries dropped by the Logstash appender ({kind.value})",
            )
            for kind in OverflowKind
        }

    @property
    def dropped_by_rate(self) -> float:
        return self.registry.counter_value(dropped_metric_name(OverflowKind.RATE_EXCEEDED))

    @property
    def dropped_by_size(self) -> float:
        return self.registry.counter_value(dropped_metric_name(OverflowKind.SIZE_EXCEEDED))

    async def append(self, entries: AsyncIterable[LogEntry]) -> None:
        """Send entries until the channel is closed and drained."""
        self.state = AppenderState.RUNNING
        logger.debug("Logstash appender started", writer=repr(self.writer))
        try:
            async for entry in entries:
                try:
                    self.send_entry(entry)
                except ServiceLogException as e:
                    logger.warning(
                        "Error appending logs.",
                        error=str(e),
                        error_code=e.error_code,
                    )
        finally:
            self.state = AppenderState.TERMINATED
            logger.debug("Logstash appender stopped")

    def send_entry(self, entry: LogEntry) -> None:
        """
        Format, marshal and write a single entry.

        Raises:
            SerializationError: entry cannot be encoded
            TransportError: the writer failed for any reason other than a limit
        """
        if not isinstance(entry, Mapping):
            raise SerializationError(
                f"unable to marshal log entry: expected a mapping, got {type(entry).__name__}",
                details={"error_type": type(entry).__name__},
            )
        data = marshal(format_entry(entry))
        logger.debug("Sending log entry to Logstash", entry=data.decode("utf-8"))
        try:
            self.writer.write(data)
        except LimitExceededError as e:
            # Logging every drop would flood the output
            self.dropped[e.kind].inc()
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(
                f"unable to write to Logstash server: {e}",
                details={"error_type": type(e).__name__},
            ) from e


LogstashOption = Callable[[LogstashAppender], None]


def logstash_rate_limit(limit: int) -> LogstashOption:
    """
    Add rate limiting to log sending.

    Logs sent at a higher rate (log lines per second) are discarded.
    """
    def option(appender: LogstashAppender) -> None:
        appender.writer = decorate_writer(appender.writer, rate_limit(limit))

    return option


def logstash_size_limit(size: int) -> LogstashOption:
    """
    Add size limiting to log sending.

    Log lines exceeding ``size`` bytes are discarded.
    """
    def option(appender: LogstashAppender) -> None:
        appender.writer = decorate_writer(appender.writer, size_limit(size))

    return option


def new_logstash_appender(
    writer: Writer,
    *options: LogstashOption,
    registry: Optional[MetricsRegistry] = None,
) -> LogstashAppender:
    """
    Create an appender sending log entries to Logstash through ``writer``.

    Options are applied in order, so the first limit wraps the base writer.

    Raises:
        ConfigurationError: an option rejected its parameters
    """
    appender = LogstashAppender(writer, registry=registry)
    for option in options:
        try:
            option(appender)
        except ConfigurationError as e:
            raise ConfigurationError(f"invalid config option: {e}", details=e.details) from e
    logger.debug("Logstash appender created", writer=repr(appender.writer), options=len(options))
    return appender
