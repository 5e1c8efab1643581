"""Custom exceptions for the frpc supervisor."""


class TunnelSupervisorError(Exception):
    """Base exception for all supervisor errors."""

    pass


class ConfigIOError(TunnelSupervisorError):
    """Raised when the tunnel configuration file cannot be read or written."""

    pass


class LockError(TunnelSupervisorError):
    """Raised when a shared lock cannot be acquired in time."""

    pass


class ProcessError(TunnelSupervisorError):
    """Raised when frpc process operations fail."""

    pass


class BinaryNotFoundError(ProcessError):
    """Raised when frpc binary is not found or not executable."""

    pass


class AllocationError(TunnelSupervisorError):
    """Raised when a remote port cannot be allocated."""

    pass


class PortExhaustedError(AllocationError):
    """Raised when every port in the allocation range is taken."""

    def __init__(self, min_port: int, max_port: int):
        self.min_port = min_port
        self.max_port = max_port
        super().__init__(
            f"No available ports in range {min_port}-{max_port} "
            "after excluding restricted ports"
        )


class MappingError(TunnelSupervisorError):
    """Raised when a port mapping request is invalid."""

    pass


class MappingLimitError(MappingError):
    """Raised when adding a mapping would exceed the configured maximum."""

    def __init__(self, max_mappings: int):
        self.max_mappings = max_mappings
        super().__init__(
            f"Maximum number of port mappings ({max_mappings}) reached. "
            "Please remove existing mappings before adding new ones."
        )


class MappingNotFoundError(MappingError):
    """Raised when a named mapping does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Port mapping '{name}' not found")


class StateError(TunnelSupervisorError):
    """Raised when a command does not fit the current process state."""

    pass


class AlreadyRunningError(StateError):
    """Raised when connecting while frpc is already tracked."""

    def __init__(self, message: str = "frpc client is already running"):
        super().__init__(message)


class NotRunningError(StateError):
    """Raised when disconnecting with nothing to stop."""

    def __init__(self, message: str = "No active frpc connection found"):
        super().__init__(message)


class ServerConnectionError(TunnelSupervisorError):
    """Raised when the tunnel server cannot be reached."""

    pass
