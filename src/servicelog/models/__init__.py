"""
Data models package.

Contains the log entry types consumed and produced by appenders.
"""

from .entry import LogEntry, ServiceLogLine, WireEntry

__all__ = [
    "LogEntry",
    "ServiceLogLine",
    "WireEntry",
]
