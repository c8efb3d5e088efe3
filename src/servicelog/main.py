"""
Command-line runner.

Reads service output from stdin and forwards every line to Logstash.
The connection comes from the ALLEGRO_EXECUTOR_SERVICELOG_LOGSTASH_*
environment variables, limits and logging from the runner settings.
"""

import asyncio
import io
import json
import logging
import sys
from typing import IO, BinaryIO, List, Optional

import structlog
from prometheus_client import start_http_server
from pydantic import ValidationError

from .config import Settings, get_settings
from .core.appender import EntryChannel
from .core.exceptions import ServiceLogException
from .core.logstash import (
    LogstashAppender,
    LogstashOption,
    logstash_rate_limit,
    logstash_size_limit,
    new_logstash_appender,
)
from .core.metrics import MetricsRegistry
from .core.transport import logstash_writer_from_env
from .core.writers import Writer
from .models.entry import LogEntry, ServiceLogLine

logger = structlog.get_logger(__name__)


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the runner."""
    # The runner's own logs go to stderr, stdin/stdout belong to the service
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_line(line: str) -> Optional[LogEntry]:
    """
    Turn one line of service output into a log entry.

    JSON objects are kept as entries, anything else becomes the message
    of a new entry. Blank lines are skipped.
    """
    text = line.rstrip("\r\n")
    if not text.strip():
        return None

    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        data = None

    if isinstance(data, dict):
        return ServiceLogLine(**data).to_entry()
    return ServiceLogLine.from_text(text).to_entry()


def text_input(stream: BinaryIO) -> IO[str]:
    """Decode service output as UTF-8, replacing bytes that are not valid UTF-8."""
    return io.TextIOWrapper(stream, encoding="utf-8", errors="replace", newline="")


def limit_options(settings: Settings) -> List[LogstashOption]:
    options: List[LogstashOption] = []
    if settings.rate_limit is not None:
        options.append(logstash_rate_limit(settings.rate_limit))
    if settings.size_limit is not None:
        options.append(logstash_size_limit(settings.size_limit))
    return options


def build_appender(
    settings: Settings,
    writer: Optional[Writer] = None,
    registry: Optional[MetricsRegistry] = None,
) -> LogstashAppender:
    """Create the Logstash appender described by ``settings``."""
    if writer is None:
        writer = logstash_writer_from_env()
    return new_logstash_appender(writer, *limit_options(settings), registry=registry)


async def read_entries(stream: IO[str], channel: EntryChannel) -> int:
    """Feed lines from ``stream`` into ``channel`` until EOF, then close it."""
    count = 0
    try:
        while True:
            line = await asyncio.to_thread(stream.readline)
            if not line:
                break
            entry = parse_line(line)
            if entry is None:
                continue
            await channel.put(entry)
            count += 1
    finally:
        channel.close()
    logger.debug("Input exhausted", entries=count)
    return count


async def run(
    settings: Settings,
    stream: IO[str],
    writer: Optional[Writer] = None,
    registry: Optional[MetricsRegistry] = None,
) -> LogstashAppender:
    """Forward ``stream`` to Logstash until EOF."""
    appender = build_appender(settings, writer=writer, registry=registry)
    channel = EntryChannel()

    logger.info(
        "Forwarding service logs to Logstash",
        rate_limit=settings.rate_limit,
        size_limit=settings.size_limit,
    )
    await asyncio.gather(
        read_entries(stream, channel),
        appender.append(channel),
    )
    logger.info(
        "Service log forwarding finished",
        dropped_by_rate=appender.dropped_by_rate,
        dropped_by_size=appender.dropped_by_size,
    )
    return appender


def main() -> int:
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error("Invalid runner settings", error=str(e))
        return 2
    configure_logging(settings.log_level)

    if settings.metrics_port is not None:
        try:
            start_http_server(settings.metrics_port)
        except OSError as e:
            logger.error("Unable to start metrics exporter", port=settings.metrics_port, error=str(e))
            return 1
        logger.info("Metrics exporter started", port=settings.metrics_port)

    try:
        asyncio.run(run(settings, text_input(sys.stdin.buffer)))
    except ServiceLogException as e:
        logger.error("Unable to start Logstash appender", error=str(e), error_code=e.error_code)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
