"""Tunnel configuration and status models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Protocol(str, Enum):
    """Protocol tag of a port mapping."""

    TCP = "tcp"
    UDP = "udp"
    HTTP = "http"
    HTTPS = "https"


class PortMapping(BaseModel):
    """A named rule forwarding a local address/port to a remote port."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Unique mapping name")
    local_ip: str = Field(default="127.0.0.1", description="Local bind address")
    local_port: int = Field(default=0, ge=0, le=65535)
    remote_port: int = Field(default=0, ge=0, le=65535)
    protocol: Protocol = Field(default=Protocol.TCP)
    custom_domains: list[str] | None = None
    subdomain: str | None = None

    def endpoint(self, server_addr: str) -> str:
        """Public address of this mapping on the tunnel server."""
        return f"{server_addr}:{self.remote_port}"


class ServerConfig(BaseModel):
    """Server identity written to the head of the frpc configuration."""

    server_addr: str
    server_port: int = Field(ge=1, le=65535)
    token: str = ""
    user: str = ""


class TunnelConfig(BaseModel):
    """Complete frpc client configuration: server identity plus mappings."""

    model_config = ConfigDict(validate_assignment=True)

    server_addr: str
    server_port: int = Field(ge=1, le=65535)
    token: str = ""
    user: str = ""
    mappings: dict[str, PortMapping] = Field(default_factory=dict)

    @property
    def server(self) -> ServerConfig:
        return ServerConfig(
            server_addr=self.server_addr,
            server_port=self.server_port,
            token=self.token,
            user=self.user,
        )

    def used_remote_ports(self) -> set[int]:
        """Remote ports already held by this installation."""
        return {m.remote_port for m in self.mappings.values() if m.remote_port}

    def remaining_mappings(self, max_mappings: int) -> int:
        return max(0, max_mappings - len(self.mappings))


class PortLimits(BaseModel):
    """Mapping quota of this installation."""

    max_mappings: int
    remaining_mappings: int


class TunnelStatus(BaseModel):
    """Answer to a status query."""

    connected: bool
    server_addr: str
    active_mappings: list[PortMapping] = Field(default_factory=list)
    pid: int | None = None
    max_mappings: int
    remaining_mappings: int
