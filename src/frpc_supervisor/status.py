"""Status queries merging process state with the cached configuration."""

import asyncio

from .common.logging import get_logger
from .config_store import ConfigCache, ConfigStore
from .models import TunnelConfig, TunnelStatus
from .process_table import ProcessTable
from .registry import ProcessRegistry
from .settings import SupervisorSettings

logger = get_logger(__name__)


class StatusReporter:
    """Answer status queries without mutating persisted state."""

    def __init__(
        self,
        settings: SupervisorSettings,
        store: ConfigStore,
        cache: ConfigCache,
        registry: ProcessRegistry,
        process_table: ProcessTable,
    ):
        self.settings = settings
        self.store = store
        self.cache = cache
        self.registry = registry
        self.process_table = process_table

    async def current_config(self) -> TunnelConfig:
        """Cached configuration, filled from disk on first use."""
        async with self.cache.locked():
            config = self.cache.get()
            if config is None:
                config = self.store.load()
                self.cache.set(config)
            return config

    async def status(self) -> TunnelStatus:
        """Report connection state, pid and mapping quota.

        An untracked frpc process found in the OS process table still counts
        as connected; only a tracked process reports a pid.
        """
        self.registry.remove_if_exited()
        pid = self.registry.pid()

        connected = pid is not None
        if not connected:
            connected = await asyncio.to_thread(
                self.process_table.is_running, self.settings.frpc_process_name
            )

        config = await self.current_config()
        active_mappings = list(config.mappings.values())

        return TunnelStatus(
            connected=connected,
            server_addr=config.server_addr,
            active_mappings=active_mappings,
            pid=pid,
            max_mappings=self.settings.max_mappings,
            remaining_mappings=config.remaining_mappings(self.settings.max_mappings),
        )
