"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
An optional YAML file provides defaults that environment variables override.
"""

import os
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

LOGSTASH_CONFIG_PREFIX = "allegro_executor_servicelog_logstash"

INET_PROTOCOLS = {"tcp", "tcp4", "tcp6", "udp", "udp4", "udp6"}
SUPPORTED_PROTOCOLS = INET_PROTOCOLS | {"unix"}


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = os.environ.get("ALLEGRO_EXECUTOR_SERVICELOG_CONFIG")

    if config_path is None:
        # Look for servicelog.yaml in common locations
        possible_paths = [
            "servicelog.yaml",  # Current directory
            "config/servicelog.yaml",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


def split_host_port(address: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` address.

    IPv6 hosts may be written in brackets, e.g. ``[::1]:5000``.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port:
        raise ValueError(f"address {address!r} is missing a port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"address {address!r} has too many colons")
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"address {address!r} has an invalid port") from None
    if not 0 < port_number < 65536:
        raise ValueError(f"address {address!r} has a port out of range")
    return host, port_number


class LogstashSettings(BaseSettings):
    """Logstash connection configuration."""

    protocol: str = Field(description="Network protocol (tcp, udp, unix and their variants)")
    address: str = Field(description="Remote address, host:port or a unix socket path")

    @field_validator("protocol", mode="before")
    def validate_protocol(cls, v: Any) -> str:
        """Normalize and check the protocol name."""
        protocol = str(v).strip().lower()
        if protocol not in SUPPORTED_PROTOCOLS:
            raise ValueError(
                f"unsupported protocol {v!r}, expected one of {sorted(SUPPORTED_PROTOCOLS)}"
            )
        return protocol

    @field_validator("address")
    def validate_address(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("address must not be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_inet_address(self) -> "LogstashSettings":
        """Network protocols need a host:port address."""
        if self.protocol in INET_PROTOCOLS:
            split_host_port(self.address)
        return self

    class Config:
        env_prefix = f"{LOGSTASH_CONFIG_PREFIX.upper()}_"
        case_sensitive = False


class Settings(BaseSettings):
    """Runner settings."""

    log_level: str = Field(default="INFO", description="Log level")
    rate_limit: Optional[int] = Field(default=None, description="Maximum log lines per second sent to Logstash")
    size_limit: Optional[int] = Field(default=None, description="Maximum size of a single log line in bytes")
    metrics_port: Optional[int] = Field(default=None, description="Port of the Prometheus metrics exporter")

    @field_validator("rate_limit", "size_limit")
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("limit must be positive")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level

    class Config:
        env_prefix = "ALLEGRO_EXECUTOR_SERVICELOG_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("servicelog", "log_level"): "ALLEGRO_EXECUTOR_SERVICELOG_LOG_LEVEL",
        ("servicelog", "rate_limit"): "ALLEGRO_EXECUTOR_SERVICELOG_RATE_LIMIT",
        ("servicelog", "size_limit"): "ALLEGRO_EXECUTOR_SERVICELOG_SIZE_LIMIT",
        ("servicelog", "metrics_port"): "ALLEGRO_EXECUTOR_SERVICELOG_METRICS_PORT",
        ("logstash", "protocol"): "ALLEGRO_EXECUTOR_SERVICELOG_LOGSTASH_PROTOCOL",
        ("logstash", "address"): "ALLEGRO_EXECUTOR_SERVICELOG_LOGSTASH_ADDRESS",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
