"""
Appender capability and the entry channel feeding it.
"""

import asyncio
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Protocol, runtime_checkable

from ..models.entry import LogEntry
from .exceptions import ChannelClosedError

_CLOSED: Any = object()


class AppenderState(str, Enum):
    """Lifecycle of an appender loop."""

    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


@runtime_checkable
class Appender(Protocol):
    """Consumes log entries and forwards them to one destination."""

    async def append(self, entries: AsyncIterable[LogEntry]) -> None:
        """Forward entries until ``entries`` is exhausted."""


class EntryChannel:
    """
    Closable asyncio channel of log entries.

    Consumers iterate with ``async for``; iteration ends once the channel
    is closed and every entry sent before closing has been received.
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, entry: LogEntry) -> None:
        self.put_nowait(entry)

    def put_nowait(self, entry: LogEntry) -> None:
        if self._closed:
            raise ChannelClosedError()
        self._queue.put_nowait(entry)

    def close(self) -> None:
        """Close the channel. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def qsize(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> AsyncIterator[LogEntry]:
        return self

    async def __anext__(self) -> LogEntry:
        entry = await self._queue.get()
        if entry is _CLOSED:
            # Leave the marker for any other consumer
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return entry
