"""
Limiting writer decorators.

A writer accepts a byte buffer and either writes all of it or raises.
Decorators wrap an inner writer and reject writes that exceed a configured
rate or size. Rejections fail fast with a LimitExceededError subclass
instead of blocking or queuing.
"""

import threading
import time
from typing import Callable, Protocol, runtime_checkable

import structlog

from .exceptions import ConfigurationError, RateLimitExceededError, SizeLimitExceededError

logger = structlog.get_logger(__name__)


@runtime_checkable
class Writer(Protocol):
    """Accept a byte buffer and return the number of bytes written."""

    def write(self, data: bytes) -> int:
        """Write ``data`` fully or raise."""


WriterFactory = Callable[[Writer], Writer]


def _validate_threshold(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            f"{name} must be an integer, got {type(value).__name__}",
            details={name: value},
        )
    if value <= 0:
        raise ConfigurationError(
            f"{name} must be positive, got {value}",
            details={name: value},
        )
    return value


class TokenBucket:
    """Token bucket rate limiter implementation."""

    def __init__(self, capacity: int, refill_rate: int) -> None:
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens: float = capacity
        self.last_refill = time.time()
        self.lock = threading.Lock()

    def consume(self, tokens: int = 1) -> bool:
        """
        Try to consume tokens from bucket.

        Returns True if tokens available, False otherwise.
        """
        with self.lock:
            now = time.time()
            time_passed = max(0.0, now - self.last_refill)

            # Add tokens based on time passed
            self.tokens = min(self.capacity, self.tokens + time_passed * self.refill_rate)
            self.last_refill = now

            if self.tokens >= tokens:
                self.tokens -= tokens
                return True

            return False


class WriterDecorator:
    """Base class for writers delegating to an inner writer."""

    def __init__(self, inner: Writer) -> None:
        self.inner = inner

    def write(self, data: bytes) -> int:
        return self.inner.write(data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.inner!r})"


class RateLimitedWriter(WriterDecorator):
    """Drops writes issued faster than ``limit`` writes per second."""

    def __init__(self, inner: Writer, limit: int) -> None:
        super().__init__(inner)
        self.limit = _validate_threshold("limit", limit)
        self.bucket = TokenBucket(capacity=limit, refill_rate=limit)

    def write(self, data: bytes) -> int:
        if not self.bucket.consume():
            raise RateLimitExceededError(self.limit)
        return self.inner.write(data)


class SizeLimitedWriter(WriterDecorator):
    """Drops writes larger than ``size`` bytes."""

    def __init__(self, inner: Writer, size: int) -> None:
        super().__init__(inner)
        self.size = _validate_threshold("size", size)

    def write(self, data: bytes) -> int:
        if len(data) > self.size:
            raise SizeLimitExceededError(len(data), self.size)
        return self.inner.write(data)


def rate_limit(limit: int) -> WriterFactory:
    """Decorator factory adding a RateLimitedWriter layer."""
    return lambda writer: RateLimitedWriter(writer, limit)


def size_limit(size: int) -> WriterFactory:
    """Decorator factory adding a SizeLimitedWriter layer."""
    return lambda writer: SizeLimitedWriter(writer, size)


def decorate_writer(writer: Writer, *decorators: WriterFactory) -> Writer:
    """
    Wrap ``writer`` with each decorator in turn.

    The first decorator wraps the base writer, the last one ends up outermost.
    """
    for decorator in decorators:
        writer = decorator(writer)
    logger.debug("Writer decorated", writer=repr(writer))
    return writer
