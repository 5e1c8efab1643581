"""Remote port allocation against the shared allocation service."""

import random
from collections.abc import Collection, Iterable

import httpx

from .common.exceptions import PortExhaustedError
from .common.logging import get_logger
from .settings import SupervisorSettings

logger = get_logger(__name__)


def generate_mapping_name(
    remote_port: int, existing: Collection[str], prefix: str = "nextjs"
) -> str:
    """Derive a mapping name from ``remote_port`` that is not in ``existing``.

    The base name is ``{prefix}{remote_port}``; clashes get a numeric suffix
    starting at 1.
    """
    base_name = f"{prefix}{remote_port}"
    name = base_name
    counter = 1
    while name in existing:
        name = f"{base_name}{counter}"
        counter += 1
    return name


class PortAllocator:
    """Pick a free remote port for a new mapping.

    The allocation service reports ports taken by every installation. When
    it cannot be reached the allocator still works, excluding only the ports
    this installation already holds.
    """

    def __init__(
        self,
        settings: SupervisorSettings,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self._transport = transport
        self._rng = rng or random.SystemRandom()

    @property
    def allocated_url(self) -> str:
        return f"{self.settings.allocation_url}/allocated"

    async def fetch_allocated(self) -> set[int]:
        """Ports already allocated across installations.

        Any failure (timeout, connection error, non-2xx status, malformed
        body) is logged and reported as an empty set.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.allocation_timeout, transport=self._transport
            ) as client:
                response = await client.get(self.allocated_url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            logger.warning(
                "Could not get allocated ports from allocation service",
                url=self.allocated_url,
                error=str(e),
            )
            return set()
        except ValueError as e:
            logger.warning(
                "Malformed allocation service response",
                url=self.allocated_url,
                error=str(e),
            )
            return set()

        return self._extract_ports(payload)

    def _extract_ports(self, payload: object) -> set[int]:
        if not isinstance(payload, dict):
            logger.warning(
                "Unexpected allocation service payload",
                payload_type=type(payload).__name__,
            )
            return set()

        entries = payload.get("allocated_ports") or []
        if not isinstance(entries, list):
            logger.warning("Unexpected allocated_ports value", value=entries)
            return set()

        ports: set[int] = set()
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            port = entry.get("remote_port")
            if isinstance(port, int) and not isinstance(port, bool):
                ports.add(port)

        logger.debug("Fetched allocated ports", count=len(ports))
        return ports

    def candidates(self, excluded: Iterable[int] = ()) -> list[int]:
        """Ports in the allocation range not excluded or restricted."""
        blocked = set(excluded) | set(self.settings.restricted_ports)
        return [
            port
            for port in range(self.settings.min_port, self.settings.max_port + 1)
            if port not in blocked
        ]

    def select_port(self, excluded: Iterable[int] = ()) -> int:
        """Choose a candidate port uniformly at random.

        Raises:
            PortExhaustedError: If no candidate remains
        """
        available = self.candidates(excluded)
        if not available:
            raise PortExhaustedError(self.settings.min_port, self.settings.max_port)
        return self._rng.choice(available)

    async def allocate(self, local_ports: Iterable[int] = ()) -> int:
        """Allocate a remote port, avoiding external and local allocations.

        Args:
            local_ports: Remote ports already used by this installation

        Returns:
            Selected remote port

        Raises:
            PortExhaustedError: If the range is fully excluded
        """
        allocated = await self.fetch_allocated()
        port = self.select_port(allocated | set(local_ports))
        logger.info("Allocated remote port", remote_port=port)
        return port
