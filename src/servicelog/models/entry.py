"""
Log entry data models.

Service log entries are free-form mappings. The only fields every entry
carries are ``time`` and ``msg``.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

# Generic entry produced by the service log pipeline
LogEntry = Dict[str, Any]

# Entry in the Logstash JSON schema
WireEntry = Dict[str, Any]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ServiceLogLine(BaseModel):
    """
    Log line read from a service.

    Only ``time`` and ``msg`` are known; every other field is kept as-is.
    """

    time: Any = Field(default_factory=utc_now, description="Timestamp of the log event")
    msg: Any = Field(default="", description="Log message")

    model_config = ConfigDict(extra="allow")

    @classmethod
    def from_text(cls, text: str) -> "ServiceLogLine":
        """Wrap a plain text line."""
        return cls(msg=text)

    def to_entry(self) -> LogEntry:
        return self.model_dump()
