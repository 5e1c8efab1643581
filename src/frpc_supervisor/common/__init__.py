"""Common utilities and shared functionality."""

from .exceptions import (
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
from .locks import timed_lock
from .logging import get_logger, setup_logging
from .utils import (
    MAX_PORT,
    MIN_PORT,
    mask_sensitive_data,
    parse_port,
    sanitize_log_data,
    validate_port,
)

__all__ = [
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
    # Locks
    "timed_lock",
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_port",
    "parse_port",
    "mask_sensitive_data",
    "sanitize_log_data",
    "MIN_PORT",
    "MAX_PORT",
]
