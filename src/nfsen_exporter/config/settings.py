"""
Configuration settings for nfsen_exporter
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Log levels"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ExporterSettings(BaseSettings):
    """Runtime settings, read from NFSEN_EXPORTER_* environment variables"""

    model_config = SettingsConfigDict(env_prefix="NFSEN_EXPORTER_", extra="ignore")

    listen: str = Field(default=":9141", description="Address to listen on for telemetry")
    metrics_path: str = Field(default="/metrics", description="Path under which to expose metrics")
    socket_path: str = Field(
        default="/tmp/nfsen.sock", description="Path for nfcapd collectors to connect"
    )
    log_level: LogLevel = Field(default=LogLevel.INFO)
    stale_after: Optional[float] = Field(
        default=None,
        gt=0,
        description="Hide exporters not refreshed for this many seconds, never when unset",
    )
    shutdown_grace: float = Field(
        default=5.0, gt=0, description="Seconds to wait for connection handlers on close"
    )

    @field_validator("listen")
    @classmethod
    def validate_listen(cls, v: str) -> str:
        parse_listen(v)
        return v

    @field_validator("metrics_path")
    @classmethod
    def validate_metrics_path(cls, v: str) -> str:
        if not v.startswith("/") or v == "/":
            raise ValueError("metrics path must start with '/' and not be the root path")
        return v

    @field_validator("socket_path")
    @classmethod
    def validate_socket_path(cls, v: str) -> str:
        if not v or "\x00" in v:
            raise ValueError("socket path must be a non-empty filesystem path")
        return v

    def http_address(self) -> Tuple[str, int]:
        return parse_listen(self.listen)


def parse_listen(address: str) -> Tuple[str, int]:
    """
    Split a "[host]:port" listen address. An empty host binds all interfaces.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"listen address {address!r} must look like [host]:port")
    try:
        port_num = int(port)
    except ValueError as e:
        raise ValueError(f"listen port {port!r} is not a number") from e
    if not 0 < port_num < 65536:
        raise ValueError(f"listen port {port_num} out of range")

    host = host.strip("[]") or "0.0.0.0"
    return host, port_num
