"""Tests for ProcessSupervisor start/stop/restart orchestration."""

import asyncio

import pytest
from structlog.testing import capture_logs

from frpc_supervisor.common.exceptions import (
    AlreadyRunningError,
    BinaryNotFoundError,
    LockError,
    NotRunningError,
)
from frpc_supervisor.config_store import ConfigCache, ConfigStore
from frpc_supervisor.models import PortMapping
from frpc_supervisor.registry import ProcessRegistry
from frpc_supervisor.supervisor import ProcessSupervisor, StopOutcome


@pytest.fixture
def store(settings):
    return ConfigStore(settings)


@pytest.fixture
def cache():
    return ConfigCache()


@pytest.fixture
def supervisor(settings, store, cache, process_table):
    return ProcessSupervisor(
        settings, store, cache, registry=ProcessRegistry(), process_table=process_table
    )


class TestConnect:
    """Starting frpc."""

    @pytest.mark.asyncio
    async def test_connect_spawns_and_registers(self, supervisor, settings, mock_popen):
        handle = await supervisor.connect()

        assert supervisor.registry.get() is handle
        assert handle.pid == 4000
        assert mock_popen.call_args.args[0] == [
            str(settings.binary_path),
            "-c",
            str(settings.config_path),
        ]
        assert settings.config_path.exists()

    @pytest.mark.asyncio
    async def test_connect_resets_server_identity(
        self, supervisor, settings, store, cache, mock_popen
    ):
        """Custom server fields are replaced, mappings are kept"""
        config = store.default_config()
        config.server_addr = "custom.example.com"
        config.server_port = 7777
        config.token = "tok"
        config.user = "someone"
        config.mappings["m"] = PortMapping(name="m", local_port=3000, remote_port=8100)
        store.save(config)

        await supervisor.connect()

        saved = store.load()
        assert saved.server_addr == settings.server_addr
        assert saved.server_port == settings.server_port
        assert saved.token == ""
        assert saved.user == ""
        assert list(saved.mappings) == ["m"]
        async with cache.locked():
            assert cache.get() == saved

    @pytest.mark.asyncio
    async def test_connect_when_running_fails_without_side_effects(
        self, supervisor, settings, process_table, mock_popen
    ):
        await supervisor.connect()
        content = settings.config_path.read_text()
        handle = supervisor.registry.get()
        process_table.pids = [4000]

        with pytest.raises(AlreadyRunningError):
            await supervisor.connect()

        assert supervisor.registry.get() is handle
        assert settings.config_path.read_text() == content
        assert mock_popen.call_count == 1
        assert process_table.kill_calls == 0

    @pytest.mark.asyncio
    async def test_connect_kills_orphans_first(
        self, supervisor, process_table, mock_popen
    ):
        process_table.pids = [999]

        await supervisor.connect()

        assert process_table.kill_calls == 1
        assert process_table.pids == []
        assert supervisor.registry.contains()

    @pytest.mark.asyncio
    async def test_connect_after_tracked_process_died(self, supervisor, mock_popen):
        """A dead tracked handle does not block a new connect"""
        first = await supervisor.connect()
        first.kill()

        second = await supervisor.connect()

        assert second.pid != first.pid
        assert supervisor.registry.get() is second

    @pytest.mark.asyncio
    async def test_connect_spawn_failure_leaves_registry_empty(
        self, supervisor, settings, mock_popen
    ):
        settings.binary_path.unlink()

        with pytest.raises(BinaryNotFoundError):
            await supervisor.connect()

        assert not supervisor.registry.contains()

    @pytest.mark.asyncio
    async def test_concurrent_connects_spawn_once(self, supervisor, mock_popen):
        results = await asyncio.gather(
            supervisor.connect(), supervisor.connect(), return_exceptions=True
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyRunningError)
        assert mock_popen.call_count == 1

    @pytest.mark.asyncio
    async def test_held_operation_lock_raises_lock_error(
        self, settings, store, cache, process_table, mock_popen
    ):
        settings.lock_timeout = 0.05
        supervisor = ProcessSupervisor(
            settings, store, cache, process_table=process_table
        )

        async with supervisor._serialized():
            with pytest.raises(LockError, match="process"):
                await supervisor.connect()

        mock_popen.assert_not_called()


class TestDisconnect:
    """Stopping frpc."""

    @pytest.mark.asyncio
    async def test_disconnect_tracked_process(self, supervisor, mock_popen):
        handle = await supervisor.connect()

        outcome = await supervisor.disconnect()

        assert outcome == StopOutcome.STOPPED
        assert not handle.is_alive()
        assert not supervisor.registry.contains()

    @pytest.mark.asyncio
    async def test_disconnect_logs_uptime(self, supervisor, mock_popen):
        await supervisor.connect()

        with capture_logs() as logs:
            await supervisor.disconnect()

        kill_event = next(e for e in logs if e["event"] == "Killing frpc process")
        assert kill_event["pid"] == 4000
        assert kill_event["uptime"] >= 0

    @pytest.mark.asyncio
    async def test_disconnect_with_nothing_running(self, supervisor, process_table):
        with pytest.raises(NotRunningError, match="No active frpc connection"):
            await supervisor.disconnect()

        assert process_table.kill_calls == 0

    @pytest.mark.asyncio
    async def test_disconnect_cleans_orphan(self, supervisor, process_table):
        """Self-healing: an orphan alone still counts as a successful stop"""
        process_table.pids = [31337]

        outcome = await supervisor.disconnect()

        assert outcome == StopOutcome.ORPHANS_CLEANED
        assert process_table.pids == []

    @pytest.mark.asyncio
    async def test_disconnect_waits_for_exit(self, supervisor, mock_popen):
        handle = await supervisor.connect()

        await supervisor.disconnect()

        handle.process.kill.assert_called_once()
        handle.process.wait.assert_called_once_with(timeout=0)


class TestRestartIfRunning:
    """Restart after a configuration change."""

    @pytest.mark.asyncio
    async def test_noop_when_not_running(self, supervisor, mock_popen):
        assert await supervisor.restart_if_running() is None
        mock_popen.assert_not_called()

    @pytest.mark.asyncio
    async def test_respawns_when_running(self, supervisor, process_table, mock_popen):
        first = await supervisor.connect()
        process_table.pids = [first.pid]

        second = await supervisor.restart_if_running()

        assert second is not None
        assert second.pid != first.pid
        assert not first.is_alive()
        assert supervisor.registry.get() is second
        assert mock_popen.call_count == 2

    @pytest.mark.asyncio
    async def test_failed_respawn_leaves_process_stopped(
        self, supervisor, settings, mock_popen
    ):
        await supervisor.connect()
        settings.binary_path.unlink()

        with pytest.raises(BinaryNotFoundError):
            await supervisor.restart_if_running()

        assert not supervisor.registry.contains()


class TestCleanup:
    """Shutdown cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_kills_tracked_and_orphans(
        self, supervisor, process_table, mock_popen
    ):
        handle = await supervisor.connect()
        process_table.pids = [handle.pid, 555]

        assert await supervisor.cleanup() is True

        assert not handle.is_alive()
        assert not supervisor.registry.contains()
        assert process_table.pids == []

    @pytest.mark.asyncio
    async def test_cleanup_with_nothing_running(self, supervisor, process_table):
        assert await supervisor.cleanup() is False
        assert process_table.kill_calls == 1


class TestSettleWait:
    """Bounded wait for killed processes to leave the process table."""

    @pytest.mark.asyncio
    async def test_wait_returns_when_processes_vanish(
        self, supervisor, settings, process_table
    ):
        settings.settle_delay = 5
        process_table.pids = [1]

        async def vanish():
            await asyncio.sleep(0.05)
            process_table.pids = []

        task = asyncio.create_task(vanish())
        started = asyncio.get_running_loop().time()
        await supervisor._wait_until_gone()
        await task

        assert asyncio.get_running_loop().time() - started < 2

    @pytest.mark.asyncio
    async def test_wait_is_bounded_by_settle_delay(
        self, supervisor, settings, process_table
    ):
        settings.settle_delay = 0.2
        process_table.pids = [1]

        started = asyncio.get_running_loop().time()
        await supervisor._wait_until_gone()

        assert asyncio.get_running_loop().time() - started < 2
