"""Start/stop/restart orchestration for the frpc process.

The supervisor reasons over two facts: whether the registry tracks a
process, and whether the OS process table shows an frpc process.

==============  ========  ==========
State           Registry  OS process
==============  ========  ==========
Disconnected    empty     absent
Connected       occupied  present
Orphaned        empty     present
Inconsistent    occupied  absent
==============  ========  ==========

Orphans are killed before every spawn so at most one frpc instance runs.
Termination is always forceful.
"""

import asyncio
from contextlib import AbstractAsyncContextManager
from enum import Enum

from .common.exceptions import AlreadyRunningError, NotRunningError
from .common.locks import timed_lock
from .common.logging import get_logger
from .config_store import ConfigCache, ConfigStore
from .process import ProcessHandle
from .process_table import ProcessTable, get_process_table
from .registry import ProcessRegistry
from .settings import SupervisorSettings

logger = get_logger(__name__)

EXIT_POLL_INTERVAL = 0.1


class StopOutcome(str, Enum):
    """What a successful disconnect actually stopped."""

    STOPPED = "stopped"
    ORPHANS_CLEANED = "orphans_cleaned"


class ProcessSupervisor:
    """Keep the running frpc process consistent with the persisted config."""

    def __init__(
        self,
        settings: SupervisorSettings,
        store: ConfigStore,
        cache: ConfigCache,
        registry: ProcessRegistry | None = None,
        process_table: ProcessTable | None = None,
    ):
        self.settings = settings
        self.store = store
        self.cache = cache
        self.registry = registry or ProcessRegistry()
        self.process_table = process_table or get_process_table()
        self._operation_lock = asyncio.Lock()

    @property
    def process_name(self) -> str:
        return self.settings.frpc_process_name

    def _serialized(self) -> AbstractAsyncContextManager[None]:
        return timed_lock(self._operation_lock, self.settings.lock_timeout, "process")

    async def probe(self) -> bool:
        """True if the OS process table shows an frpc process."""
        return await asyncio.to_thread(self.process_table.is_running, self.process_name)

    async def _wait_until_gone(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.settle_delay
        while (remaining := deadline - loop.time()) > 0:
            if not await self.probe():
                return
            await asyncio.sleep(min(EXIT_POLL_INTERVAL, remaining))
        if await self.probe():
            logger.warning(
                "frpc processes still present after settle delay",
                settle_delay=self.settings.settle_delay,
            )

    async def _kill_orphans(self) -> bool:
        if not await self.probe():
            return False

        logger.info(
            "Found untracked frpc processes, killing them", name=self.process_name
        )
        await asyncio.to_thread(self.process_table.kill, self.process_name)
        await self._wait_until_gone()
        return True

    async def _stop_tracked(self) -> ProcessHandle | None:
        handle = self.registry.remove()
        if handle is None:
            return None

        logger.info(
            "Killing frpc process", pid=handle.pid, uptime=round(handle.uptime, 1)
        )
        handle.kill()
        exited = await asyncio.to_thread(handle.wait, self.settings.settle_delay)
        if not exited:
            logger.warning(
                "frpc process did not exit within settle delay",
                pid=handle.pid,
                settle_delay=self.settings.settle_delay,
            )
        return handle

    async def _spawn(self) -> ProcessHandle:
        handle = await asyncio.to_thread(
            ProcessHandle.spawn, self.settings.binary_path, self.store.path
        )
        self.registry.insert(handle)
        return handle

    async def connect(self) -> ProcessHandle:
        """Start frpc against the default server identity.

        Server address, port, token and user are reset to the configured
        defaults before the config is persisted and frpc is spawned.

        Raises:
            AlreadyRunningError: If a live frpc process is already tracked
            ProcessError: If frpc cannot be spawned
            ConfigIOError: If the configuration cannot be read or written
        """
        async with self._serialized():
            self.registry.remove_if_exited()
            if self.registry.contains():
                raise AlreadyRunningError()

            logger.debug("Checking for existing frpc processes")
            await self._kill_orphans()

            async with self.cache.locked():
                config = self.store.load()
                config.server_addr = self.settings.server_addr
                config.server_port = self.settings.server_port
                config.token = ""
                config.user = ""
                self.store.save(config)
                self.cache.set(config)

            handle = await self._spawn()
            logger.info(
                "frpc client connected",
                pid=handle.pid,
                server_addr=config.server_addr,
                mappings=len(config.mappings),
            )
            return handle

    async def disconnect(self) -> StopOutcome:
        """Stop the tracked process and any orphan.

        Raises:
            NotRunningError: If nothing was tracked and no orphan was found
        """
        async with self._serialized():
            handle = await self._stop_tracked()
            orphans = await self._kill_orphans()

            if handle is not None:
                logger.info("frpc client disconnected", pid=handle.pid)
                return StopOutcome.STOPPED
            if orphans:
                logger.info("frpc client disconnected (cleaned up orphaned processes)")
                return StopOutcome.ORPHANS_CLEANED
            raise NotRunningError()

    async def restart_if_running(self) -> ProcessHandle | None:
        """Respawn frpc on the persisted config if it is tracked.

        A single attempt: if the spawn fails the process stays stopped and
        the error propagates.
        """
        async with self._serialized():
            if not self.registry.contains():
                logger.debug("frpc not running, skipping restart")
                return None

            await self._stop_tracked()
            await self._kill_orphans()
            handle = await self._spawn()
            logger.info("frpc client restarted", pid=handle.pid)
            return handle

    async def cleanup(self) -> bool:
        """Kill the tracked process and every frpc process on the host.

        Returns:
            True if anything was killed
        """
        async with self._serialized():
            handle = self.registry.remove()
            if handle is not None:
                handle.kill()
            killed = await asyncio.to_thread(self.process_table.kill, self.process_name)

        if handle is not None or killed:
            logger.info("Cleaned up frpc processes")
            return True
        logger.info("No frpc processes found to clean up")
        return False
