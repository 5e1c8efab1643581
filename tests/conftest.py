"""Shared pytest fixtures for frpc supervisor tests."""

import itertools
from unittest.mock import Mock

import httpx
import pytest
import structlog

from frpc_supervisor.process_table import ProcessTable
from frpc_supervisor.settings import SupervisorSettings


class FakeProcessTable(ProcessTable):
    """In-memory stand-in for the OS process table."""

    def __init__(self) -> None:
        self.pids: list[int] = []
        self.kill_calls = 0

    def find(self, name: str) -> list[int]:
        return list(self.pids)

    def kill(self, name: str) -> bool:
        self.kill_calls += 1
        killed = bool(self.pids)
        self.pids = []
        return killed


def make_process(pid: int) -> Mock:
    """Mock Popen object that stays alive until killed."""
    process = Mock()
    process.pid = pid
    process.returncode = None
    process.poll.return_value = None

    def kill() -> None:
        process.returncode = -9
        process.poll.return_value = -9

    process.kill.side_effect = kill
    process.wait.return_value = -9
    return process


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary executable and config path.

    Returns:
        SupervisorSettings: settings with no settle delay
    """
    binary_path = tmp_path / "bin" / "frpc"
    binary_path.parent.mkdir()
    binary_path.write_text("#!/bin/sh\n")
    binary_path.chmod(0o755)

    return SupervisorSettings(
        config_path=tmp_path / "bin" / "frpc.toml",
        binary_path=binary_path,
        settle_delay=0,
        lock_timeout=5,
    )


@pytest.fixture
def process_table():
    return FakeProcessTable()


@pytest.fixture
def mock_popen(monkeypatch):
    """Mock subprocess.Popen handing out live processes with increasing pids.

    Returns:
        Mock: Mocked Popen class
    """
    pids = itertools.count(4000)
    popen = Mock(side_effect=lambda *args, **kwargs: make_process(next(pids)))
    monkeypatch.setattr("subprocess.Popen", popen)
    return popen


def allocation_transport(
    ports: list[int] | None = None, status_code: int = 200
) -> httpx.MockTransport:
    """Allocation service answering ``GET /allocated`` with ``ports``."""
    allocated = [
        {"remote_port": port, "proxy_name": f"p{port}"} for port in ports or []
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/allocated")
        return httpx.Response(
            status_code,
            json={
                "status": True,
                "message": "ok",
                "allocated_ports": allocated,
                "count": len(allocated),
            },
        )

    return httpx.MockTransport(handler)


@pytest.fixture
def empty_allocation():
    return allocation_transport([])


@pytest.fixture
def make_allocation():
    """Factory for allocation service transports."""
    return allocation_transport


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset structlog after each test.

    Keeps a test that calls setup_logging from caching loggers for the rest
    of the session.
    """
    yield
    structlog.reset_defaults()
