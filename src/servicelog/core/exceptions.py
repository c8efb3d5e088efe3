"""
Custom exceptions for the service log appenders.

Provides structured error handling with error codes and details so that
failures can be logged with context or classified by the appender loop.
"""

from enum import Enum
from typing import Any, Dict, Optional


class OverflowKind(str, Enum):
    """Reasons a limiting writer may reject a write."""

    RATE_EXCEEDED = "RateExceeded"
    SIZE_EXCEEDED = "SizeExceeded"


class ServiceLogException(Exception):
    """Base exception for service log appenders."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(ServiceLogException):
    """Raised when an appender or its connection cannot be configured."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="configuration_error",
            details=details,
        )


class SerializationError(ServiceLogException):
    """Raised when a log entry cannot be encoded for the wire."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="serialization_error",
            details=details,
        )


class TransportError(ServiceLogException):
    """Raised when writing to or connecting with the remote endpoint fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="transport_error",
            details=details,
        )


class LimitExceededError(ServiceLogException):
    """
    Raised when a limiting writer rejects a write.

    Marks an expected overflow: the entry is dropped and counted,
    never logged per occurrence.
    """

    def __init__(
        self,
        kind: OverflowKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=kind.name.lower(),
            details=details,
        )
        self.kind = kind


class RateLimitExceededError(LimitExceededError):
    """Raised when writes arrive faster than the configured rate."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            kind=OverflowKind.RATE_EXCEEDED,
            message="Rate limit exceeded",
            details={"limit": limit},
        )


class SizeLimitExceededError(LimitExceededError):
    """Raised when a single write is larger than the configured size."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            kind=OverflowKind.SIZE_EXCEEDED,
            message=f"Size limit exceeded ({size} > {limit} bytes)",
            details={"size": size, "limit": limit},
        )


class ChannelClosedError(ServiceLogException):
    """Raised when an entry is sent on a closed channel."""

    def __init__(self, message: str = "Send on closed channel") -> None:
        super().__init__(
            message=message,
            error_code="channel_closed",
        )
