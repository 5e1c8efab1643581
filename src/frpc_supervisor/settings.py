"""Supervisor settings model."""

import platform
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _default_binary_path() -> Path:
    name = "frpc.exe" if platform.system() == "Windows" else "frpc"
    return Path("bin") / name


class SupervisorSettings(BaseModel):
    """Pydantic configuration for the frpc supervisor.

    Defaults mirror the single-tenant deployment the supervisor was built
    for: one fixed tunnel server and one shared port-allocation backend.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )

    config_path: Path = Field(
        default=Path("bin") / "frpc.toml", description="frpc configuration file"
    )
    binary_path: Path = Field(
        default_factory=_default_binary_path, description="frpc executable"
    )
    process_name: str | None = Field(
        default=None,
        description="Executable name used to find untracked frpc processes",
    )

    server_addr: str = Field(default="64.23.133.199", min_length=1)
    server_port: int = Field(default=7000, ge=1, le=65535)
    local_ip: str = Field(default="127.0.0.1", min_length=1)
    default_protocol: str = Field(default="tcp", pattern="^(tcp|udp|http|https)$")

    allocation_url: str = Field(
        default="http://64.23.133.199:5000/api/v1/ports",
        description="Base URL of the port allocation service",
    )
    allocation_timeout: float = Field(default=10.0, gt=0, le=120.0)

    min_port: int = Field(default=8001, ge=1, le=65535)
    max_port: int = Field(default=8999, ge=1, le=65535)
    restricted_ports: frozenset[int] = Field(
        default=frozenset({8081, 8090, 9000}),
        description="Ports reserved by services on the tunnel server",
    )

    max_mappings: int = Field(default=3, ge=1, le=100)
    mapping_name_prefix: str = Field(default="nextjs", min_length=1)

    settle_delay: float = Field(default=2.0, ge=0, le=60.0)
    lock_timeout: float | None = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0, le=120.0)

    @field_validator("allocation_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the allocation base URL."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def check_port_range(self) -> "SupervisorSettings":
        """Ensure the allocation range is not inverted."""
        if self.min_port > self.max_port:
            raise ValueError(
                f"min_port ({self.min_port}) must not exceed max_port ({self.max_port})"
            )
        return self

    @property
    def frpc_process_name(self) -> str:
        """Name matched against the OS process table."""
        return self.process_name or self.binary_path.name
