"""Single-slot registry of the supervised frpc process."""

import threading

from .common.exceptions import AlreadyRunningError
from .common.logging import get_logger
from .process import ProcessHandle

logger = get_logger(__name__)


class ProcessRegistry:
    """Owner of the one tracked frpc process handle.

    Each method is atomic on its own. Callers that check and then mutate
    must serialize on their own lock across the sequence.
    """

    def __init__(self) -> None:
        self._handle: ProcessHandle | None = None
        self._lock = threading.Lock()

    def insert(self, handle: ProcessHandle) -> None:
        """Track ``handle``.

        Raises:
            AlreadyRunningError: If a handle is already tracked
        """
        with self._lock:
            if self._handle is not None:
                raise AlreadyRunningError()
            self._handle = handle
        logger.debug("Registered frpc process", pid=handle.pid)

    def remove(self) -> ProcessHandle | None:
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            logger.debug("Unregistered frpc process", pid=handle.pid)
        return handle

    def remove_if_exited(self) -> ProcessHandle | None:
        """Drop the tracked handle if its process has terminated."""
        with self._lock:
            handle = self._handle
            if handle is None or handle.is_alive():
                return None
            self._handle = None
        logger.info(
            "Tracked frpc process exited",
            pid=handle.pid,
            returncode=handle.process.returncode,
        )
        return handle

    def get(self) -> ProcessHandle | None:
        with self._lock:
            return self._handle

    def contains(self) -> bool:
        with self._lock:
            return self._handle is not None

    def pid(self) -> int | None:
        with self._lock:
            return self._handle.pid if self._handle is not None else None
