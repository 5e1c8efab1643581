"""OS process table access for frpc processes.

This is the only view the supervisor has of processes it did not start
itself. Matching is by executable name, so any process carrying the frpc
name counts as an frpc instance. On POSIX the name is matched against the
full command line because the kernel truncates process names to 15 bytes.
"""

import csv
import platform
import re
import subprocess
from abc import ABC, abstractmethod

from .common.exceptions import ProcessError
from .common.logging import get_logger

logger = get_logger(__name__)

CREATE_NO_WINDOW = 0x08000000

_ERE_SPECIAL = re.compile(r"([.^$*+?()\[\]{}|\\])")


def creation_flags(system: str | None = None) -> int:
    """Popen creation flags that keep helper processes windowless."""
    if (system or platform.system()) == "Windows":
        return CREATE_NO_WINDOW
    return 0


class ProcessTable(ABC):
    """List and terminate processes by executable name."""

    @abstractmethod
    def find(self, name: str) -> list[int]:
        """Return pids of processes named ``name``."""

    @abstractmethod
    def kill(self, name: str) -> bool:
        """Force-kill every process named ``name``.

        Returns:
            True if at least one process was killed

        Raises:
            ProcessError: If the kill command cannot be executed
        """

    def is_running(self, name: str) -> bool:
        return bool(self.find(name))


class PosixProcessTable(ProcessTable):
    """Process table backed by ``pgrep``/``pkill`` (Linux, macOS)."""

    @staticmethod
    def pattern(name: str) -> str:
        """Full command line pattern whose executable is exactly ``name``."""
        escaped = _ERE_SPECIAL.sub(r"\\\1", name)
        return f"(^|/){escaped}( |$)"

    def find(self, name: str) -> list[int]:
        try:
            result = subprocess.run(
                ["pgrep", "-f", self.pattern(name)],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            logger.warning("Could not query process table", tool="pgrep", error=str(e))
            return []

        # pgrep exits 1 when nothing matches
        if result.returncode != 0:
            return []
        return [int(token) for token in result.stdout.split() if token.isdigit()]

    def kill(self, name: str) -> bool:
        try:
            result = subprocess.run(
                ["pkill", "-9", "-f", self.pattern(name)],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise ProcessError(f"Failed to execute pkill: {e}") from e

        if result.returncode == 0:
            logger.info("Killed existing frpc processes", name=name)
            return True
        if result.returncode == 1:
            logger.debug("No frpc processes to kill", name=name)
            return False

        logger.warning(
            "pkill reported an error",
            name=name,
            returncode=result.returncode,
            stderr=result.stderr.strip(),
        )
        return False


class WindowsProcessTable(ProcessTable):
    """Process table backed by ``tasklist``/``taskkill``."""

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            args,
            capture_output=True,
            text=True,
            check=False,
            creationflags=CREATE_NO_WINDOW,
        )

    def find(self, name: str) -> list[int]:
        try:
            result = self._run(
                ["tasklist", "/FI", f"IMAGENAME eq {name}", "/FO", "CSV", "/NH"]
            )
        except OSError as e:
            logger.warning(
                "Could not query process table", tool="tasklist", error=str(e)
            )
            return []

        pids = []
        for row in csv.reader(result.stdout.splitlines()):
            if len(row) >= 2 and row[0].lower() == name.lower() and row[1].isdigit():
                pids.append(int(row[1]))
        return pids

    def kill(self, name: str) -> bool:
        try:
            result = self._run(["taskkill", "/F", "/IM", name])
        except OSError as e:
            raise ProcessError(f"Failed to execute taskkill: {e}") from e

        if result.returncode == 0:
            logger.info("Killed existing frpc processes", name=name)
            return True

        output = f"{result.stdout}\n{result.stderr}"
        if "not found" in output.lower():
            logger.debug("No frpc processes to kill", name=name)
        else:
            logger.warning(
                "taskkill reported an error",
                name=name,
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )
        return False


def get_process_table(system: str | None = None) -> ProcessTable:
    """Process table implementation for the running platform."""
    if (system or platform.system()) == "Windows":
        return WindowsProcessTable()
    return PosixProcessTable()
