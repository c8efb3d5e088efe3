"""
Socket transport for the Logstash appender.

Opens the connection described by the environment and exposes it as a
plain writer. No reconnect logic: a broken connection surfaces as
TransportError on every following write.
"""

import socket
from typing import Optional

import structlog
from pydantic import ValidationError

from ..config import INET_PROTOCOLS, LogstashSettings, split_host_port
from .exceptions import ConfigurationError, TransportError

logger = structlog.get_logger(__name__)

_FAMILIES = {
    "4": socket.AF_INET,
    "6": socket.AF_INET6,
}


class SocketWriter:
    """Writer sending each buffer over a connected socket."""

    def __init__(self, sock: socket.socket, protocol: str, address: str) -> None:
        self.sock = sock
        self.protocol = protocol
        self.address = address

    def write(self, data: bytes) -> int:
        try:
            if self.sock.type == socket.SOCK_DGRAM:
                self.sock.send(data)
            else:
                self.sock.sendall(data)
        except OSError as e:
            raise TransportError(
                f"unable to write to {self.protocol}://{self.address}: {e}",
                details={"protocol": self.protocol, "address": self.address},
            ) from e
        return len(data)

    def close(self) -> None:
        self.sock.close()

    def __repr__(self) -> str:
        return f"SocketWriter({self.protocol}://{self.address})"


def dial(protocol: str, address: str, timeout: Optional[float] = None) -> SocketWriter:
    """
    Connect to ``address`` using ``protocol``.

    Args:
        protocol: tcp, tcp4, tcp6, udp, udp4, udp6 or unix
        address: host:port for network protocols, a path for unix
        timeout: optional connect timeout in seconds

    Returns:
        SocketWriter wrapping the connected socket
    """
    protocol = protocol.lower()
    if protocol == "unix":
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.settimeout(timeout)
            sock.connect(address)
            sock.settimeout(None)
        except OSError as e:
            sock.close()
            raise TransportError(
                f"unable to connect to unix://{address}: {e}",
                details={"protocol": protocol, "address": address},
            ) from e
        logger.info("Connected to Logstash", protocol=protocol, address=address)
        return SocketWriter(sock, protocol, address)

    if protocol not in INET_PROTOCOLS:
        raise ConfigurationError(f"unsupported protocol {protocol!r}", details={"protocol": protocol})

    try:
        host, port = split_host_port(address)
    except ValueError as e:
        raise ConfigurationError(str(e), details={"address": address}) from e

    family = _FAMILIES.get(protocol[-1], socket.AF_UNSPEC)
    socktype = socket.SOCK_DGRAM if protocol.startswith("udp") else socket.SOCK_STREAM

    try:
        addrinfo = socket.getaddrinfo(host or None, port, family, socktype)
    except OSError as e:
        raise TransportError(
            f"unable to resolve {address}: {e}",
            details={"protocol": protocol, "address": address},
        ) from e

    last_error: Optional[OSError] = None
    for af, kind, proto, _, sockaddr in addrinfo:
        sock = socket.socket(af, kind, proto)
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
            sock.settimeout(None)
        except OSError as e:
            sock.close()
            last_error = e
            logger.debug("Connection attempt failed", address=str(sockaddr), error=str(e))
            continue
        logger.info("Connected to Logstash", protocol=protocol, address=address)
        return SocketWriter(sock, protocol, address)

    raise TransportError(
        f"unable to connect to {protocol}://{address}: {last_error}",
        details={"protocol": protocol, "address": address},
    )


def logstash_writer_from_env(timeout: Optional[float] = None) -> SocketWriter:
    """
    Create the connection for the Logstash appender from environment variables.

    Reads ALLEGRO_EXECUTOR_SERVICELOG_LOGSTASH_PROTOCOL and
    ALLEGRO_EXECUTOR_SERVICELOG_LOGSTASH_ADDRESS.
    """
    try:
        settings = LogstashSettings()
    except ValidationError as e:
        raise ConfigurationError(
            f"unable to get address from env: {e}",
            details={"errors": e.errors(include_url=False)},
        ) from e

    return dial(settings.protocol, settings.address, timeout=timeout)
