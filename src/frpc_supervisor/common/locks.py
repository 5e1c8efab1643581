"""Timed lock acquisition for shared supervisor state."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from .exceptions import LockError
from .logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def timed_lock(
    lock: asyncio.Lock, timeout: float | None, name: str
) -> AsyncIterator[None]:
    """Hold ``lock`` for the body of the ``async with`` block.

    Raises:
        LockError: If the lock is not acquired within ``timeout`` seconds
    """
    try:
        await asyncio.wait_for(lock.acquire(), timeout=timeout)
    except TimeoutError as e:
        logger.error("Lock acquisition timed out", lock=name, timeout=timeout)
        raise LockError(f"Could not acquire {name} lock within {timeout}s") from e
    try:
        yield
    finally:
        lock.release()
