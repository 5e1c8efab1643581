"""Tests for configuration models."""

import pytest
from pydantic import ValidationError

from frpc_supervisor.models import PortMapping, Protocol, TunnelConfig


class TestPortMapping:
    def test_defaults(self):
        mapping = PortMapping(name="m")

        assert mapping.local_ip == "127.0.0.1"
        assert mapping.protocol == Protocol.TCP
        assert mapping.custom_domains is None
        assert mapping.subdomain is None

    def test_frozen(self):
        mapping = PortMapping(name="m")

        with pytest.raises(ValidationError):
            mapping.local_port = 80

    def test_endpoint(self):
        mapping = PortMapping(name="m", remote_port=8123)

        assert mapping.endpoint("tunnel.example.com") == "tunnel.example.com:8123"

    @pytest.mark.parametrize("field", ["local_port", "remote_port"])
    def test_port_bounds(self, field):
        with pytest.raises(ValidationError):
            PortMapping(name="m", **{field: 65536})


class TestTunnelConfig:
    def test_used_remote_ports_skips_unset(self):
        config = TunnelConfig(
            server_addr="a",
            server_port=7000,
            mappings={
                "a": PortMapping(name="a", remote_port=8001),
                "b": PortMapping(name="b", remote_port=0),
            },
        )

        assert config.used_remote_ports() == {8001}

    def test_remaining_mappings_floor(self):
        config = TunnelConfig(
            server_addr="a",
            server_port=7000,
            mappings={n: PortMapping(name=n) for n in "abcd"},
        )

        assert config.remaining_mappings(3) == 0
        assert config.remaining_mappings(10) == 6

    def test_server_view(self):
        config = TunnelConfig(server_addr="a", server_port=7000, token="t", user="u")

        assert config.server.model_dump() == {
            "server_addr": "a",
            "server_port": 7000,
            "token": "t",
            "user": "u",
        }
