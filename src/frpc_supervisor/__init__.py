"""frpc supervisor - process supervision and port mapping for an frpc client."""

from .allocator import PortAllocator, generate_mapping_name
from .common.exceptions import (
    AllocationError,
    AlreadyRunningError,
    BinaryNotFoundError,
    ConfigIOError,
    LockError,
    MappingError,
    MappingLimitError,
    MappingNotFoundError,
    NotRunningError,
    PortExhaustedError,
    ProcessError,
    ServerConnectionError,
    StateError,
    TunnelSupervisorError,
)
from .common.logging import get_logger, setup_logging
from .config_store import ConfigCache, ConfigStore, ParseResult, ParseWarning
from .manager import TunnelManager
from .models import (
    PortLimits,
    PortMapping,
    Protocol,
    ServerConfig,
    TunnelConfig,
    TunnelStatus,
)
from .process import ProcessHandle
from .process_table import (
    PosixProcessTable,
    ProcessTable,
    WindowsProcessTable,
    get_process_table,
)
from .registry import ProcessRegistry
from .settings import SupervisorSettings
from .status import StatusReporter
from .supervisor import ProcessSupervisor, StopOutcome

__version__ = "0.1.0"


__all__ = [
    # Command surface
    "TunnelManager",
    "SupervisorSettings",
    # Components
    "ConfigStore",
    "ConfigCache",
    "ParseResult",
    "ParseWarning",
    "PortAllocator",
    "generate_mapping_name",
    "ProcessHandle",
    "ProcessRegistry",
    "ProcessSupervisor",
    "StopOutcome",
    "StatusReporter",
    "ProcessTable",
    "PosixProcessTable",
    "WindowsProcessTable",
    "get_process_table",
    # Models
    "TunnelConfig",
    "PortMapping",
    "Protocol",
    "ServerConfig",
    "TunnelStatus",
    "PortLimits",
    # Exceptions
    "TunnelSupervisorError",
    "ConfigIOError",
    "LockError",
    "ProcessError",
    "BinaryNotFoundError",
    "AllocationError",
    "PortExhaustedError",
    "MappingError",
    "MappingLimitError",
    "MappingNotFoundError",
    "StateError",
    "AlreadyRunningError",
    "NotRunningError",
    "ServerConnectionError",
    # Logging
    "get_logger",
    "setup_logging",
]
