"""Host-facing command surface of the frpc supervisor."""

import asyncio
import socket
from types import TracebackType
from typing import Literal

import httpx

from .allocator import PortAllocator, generate_mapping_name
from .common.exceptions import (
    MappingLimitError,
    MappingNotFoundError,
    ServerConnectionError,
)
from .common.logging import get_logger
from .common.utils import validate_port
from .config_store import ConfigCache, ConfigStore
from .models import (
    PortLimits,
    PortMapping,
    Protocol,
    ServerConfig,
    TunnelConfig,
    TunnelStatus,
)
from .process_table import ProcessTable, get_process_table
from .registry import ProcessRegistry
from .settings import SupervisorSettings
from .status import StatusReporter
from .supervisor import ProcessSupervisor, StopOutcome

logger = get_logger(__name__)


class TunnelManager:
    """Commands the host application dispatches against the frpc client.

    Every command is a coroutine and may run concurrently with the others.
    Configuration read-modify-write sequences hold the config cache lock;
    process changes are serialized by the supervisor.

    Use as an async context manager to kill frpc when the host shuts down::

        async with TunnelManager(settings) as manager:
            await manager.connect()
            mapping = await manager.add_mapping(3000)
    """

    def __init__(
        self,
        settings: SupervisorSettings | None = None,
        process_table: ProcessTable | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or SupervisorSettings()
        self.store = ConfigStore(self.settings)
        self.cache = ConfigCache(lock_timeout=self.settings.lock_timeout)
        self.registry = ProcessRegistry()
        self.process_table = process_table or get_process_table()
        self.allocator = PortAllocator(self.settings, transport=transport)
        self.supervisor = ProcessSupervisor(
            self.settings,
            self.store,
            self.cache,
            registry=self.registry,
            process_table=self.process_table,
        )
        self.reporter = StatusReporter(
            self.settings, self.store, self.cache, self.registry, self.process_table
        )
        logger.debug(
            "TunnelManager initialized",
            config_path=str(self.settings.config_path),
            binary_path=str(self.settings.binary_path),
        )

    def _check_limit(self, config: TunnelConfig) -> None:
        if len(config.mappings) >= self.settings.max_mappings:
            raise MappingLimitError(self.settings.max_mappings)

    async def connect(self) -> int:
        """Start frpc. Returns the pid of the new process."""
        handle = await self.supervisor.connect()
        return handle.pid

    async def disconnect(self) -> StopOutcome:
        """Stop frpc, cleaning up orphaned processes as well."""
        return await self.supervisor.disconnect()

    async def add_mapping(self, local_port: int) -> PortMapping:
        """Expose ``local_port`` on a freshly allocated remote port.

        The configuration is persisted before frpc is restarted. If the
        restart fails the new mapping stays saved and the host has to
        reconnect.

        Raises:
            ValueError: If ``local_port`` is not a valid port
            MappingLimitError: If the mapping limit is already reached
            PortExhaustedError: If no remote port is free
        """
        validate_port(local_port, "Local port")

        async with self.cache.locked():
            self._check_limit(self.store.load())

        # No lock is held across the allocation service call.
        allocated = await self.allocator.fetch_allocated()

        async with self.cache.locked():
            config = self.store.load()
            self._check_limit(config)

            remote_port = self.allocator.select_port(
                allocated | config.used_remote_ports()
            )
            name = generate_mapping_name(
                remote_port, config.mappings, prefix=self.settings.mapping_name_prefix
            )
            mapping = PortMapping(
                name=name,
                local_ip=self.settings.local_ip,
                local_port=local_port,
                remote_port=remote_port,
                protocol=Protocol(self.settings.default_protocol),
            )
            config.mappings[name] = mapping
            self.store.save(config)
            self.cache.set(config)

        logger.info(
            "Port mapping added",
            name=name,
            local_port=local_port,
            remote_port=remote_port,
            port_range=f"{self.settings.min_port}-{self.settings.max_port}",
        )
        await self.supervisor.restart_if_running()
        return mapping

    async def remove_mapping(self, name: str) -> PortMapping:
        """Delete the mapping called ``name``.

        Raises:
            MappingNotFoundError: If no such mapping exists
        """
        async with self.cache.locked():
            config = self.store.load()
            mapping = config.mappings.pop(name, None)
            if mapping is None:
                raise MappingNotFoundError(name)
            self.store.save(config)
            self.cache.set(config)

        logger.info("Port mapping removed", name=name, remote_port=mapping.remote_port)
        await self.supervisor.restart_if_running()
        return mapping

    async def get_status(self) -> TunnelStatus:
        return await self.reporter.status()

    async def get_mappings(self) -> list[PortMapping]:
        """Mappings as currently persisted on disk."""
        config = self.store.load()
        return list(config.mappings.values())

    async def get_port_limits(self) -> PortLimits:
        config = self.store.load()
        return PortLimits(
            max_mappings=self.settings.max_mappings,
            remaining_mappings=config.remaining_mappings(self.settings.max_mappings),
        )

    async def get_server_config(self) -> ServerConfig:
        """The fixed server identity every connect writes."""
        return self.store.default_config().server

    async def test_connection(self, timeout: float | None = None) -> bool:
        """Open a TCP connection to the tunnel server.

        Raises:
            ServerConnectionError: If the server cannot be reached in time
        """
        address = (self.settings.server_addr, self.settings.server_port)
        if timeout is None:
            timeout = self.settings.connect_timeout
        try:
            sock = await asyncio.to_thread(socket.create_connection, address, timeout)
        except OSError as e:
            logger.warning(
                "Connection test failed",
                server_addr=address[0],
                server_port=address[1],
                error=str(e),
            )
            raise ServerConnectionError(f"Connection test failed: {e}") from e

        sock.close()
        logger.info("Connection test successful", server_addr=address[0])
        return True

    async def cleanup(self) -> bool:
        """Kill every frpc process; called when the host shuts down."""
        return await self.supervisor.cleanup()

    async def __aenter__(self) -> "TunnelManager":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        """Kill frpc on exit. Cleanup errors are logged, never raised."""
        try:
            await self.cleanup()
        except Exception as e:
            logger.error("Error during cleanup", error=str(e))
        return False
