"""Handle on a spawned frpc process."""

import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .common.exceptions import BinaryNotFoundError, ProcessError
from .common.logging import get_logger
from .process_table import creation_flags

logger = get_logger(__name__)


def validate_binary(binary_path: Path) -> None:
    """Check that ``binary_path`` is an executable file.

    Raises:
        BinaryNotFoundError: If binary doesn't exist or isn't executable
    """
    if not binary_path.exists():
        raise BinaryNotFoundError(f"Binary not found: {binary_path}")

    if not binary_path.is_file():
        raise BinaryNotFoundError(f"Binary path is not a file: {binary_path}")

    if not os.access(binary_path, os.X_OK):
        raise BinaryNotFoundError(f"Binary is not executable: {binary_path}")


@dataclass(frozen=True)
class ProcessHandle:
    """OS handle and pid of the supervised frpc process."""

    process: subprocess.Popen[bytes]
    started_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def spawn(cls, binary_path: Path, config_path: Path) -> "ProcessHandle":
        """Start frpc with ``config_path`` as its configuration.

        Standard streams are discarded; frpc runs without interactive I/O.

        Raises:
            BinaryNotFoundError: If the binary is missing or not executable
            ProcessError: If the process fails to start
        """
        validate_binary(binary_path)

        logger.info(
            "Starting frpc process",
            binary_path=str(binary_path),
            config_path=str(config_path),
        )
        try:
            process = subprocess.Popen(
                [str(binary_path), "-c", str(config_path)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                creationflags=creation_flags(),
            )
        except OSError as e:
            logger.error("Failed to start frpc process", error=str(e))
            raise ProcessError(f"Failed to start frpc: {e}") from e

        logger.info("frpc process started", pid=process.pid)
        return cls(process=process)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def uptime(self) -> float:
        """Seconds since the process was spawned."""
        return (datetime.now() - self.started_at).total_seconds()

    def is_alive(self) -> bool:
        return self.process.poll() is None

    def kill(self) -> None:
        """Force-kill the process. Errors from an already-gone process are ignored."""
        try:
            self.process.kill()
        except OSError as e:
            logger.debug("Kill on frpc process failed", pid=self.pid, error=str(e))

    def wait(self, timeout: float | None) -> bool:
        """Wait for the process to exit.

        Returns:
            True if the process exited within ``timeout``
        """
        try:
            self.process.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            return False
