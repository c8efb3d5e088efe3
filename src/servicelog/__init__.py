"""
servicelog - Logstash appender for service logs

Forwards structured service log entries to Logstash as line-delimited JSON,
dropping and counting entries that exceed the configured rate or size limits.
"""

__version__ = "0.1.0"

from .core.appender import Appender, AppenderState, EntryChannel
from .core.exceptions import (
    ConfigurationError,
    LimitExceededError,
    OverflowKind,
    SerializationError,
    ServiceLogException,
    TransportError,
)
from .core.logstash import (
    LogstashAppender,
    logstash_rate_limit,
    logstash_size_limit,
    new_logstash_appender,
)
from .core.transport import logstash_writer_from_env

__all__ = [
    "Appender",
    "AppenderState",
    "EntryChannel",
    "ConfigurationError",
    "LimitExceededError",
    "OverflowKind",
    "SerializationError",
    "ServiceLogException",
    "TransportError",
    "LogstashAppender",
    "logstash_rate_limit",
    "logstash_size_limit",
    "new_logstash_appender",
    "logstash_writer_from_env",
]
