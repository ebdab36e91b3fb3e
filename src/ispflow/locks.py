"""
Per-aggregate locks for workflow entry points.

Two workflows must not mutate the same aggregate at once. Within a process
this manager serializes entry points per key; across processes the row lock
taken with ``SELECT ... FOR UPDATE`` inside the mutating unit of work does.

Usage:
    >>> locks = KeyedLockManager()
    >>> async with locks.acquire(aggregate_lock_key("Domain", 42), timeout=5.0):
    ...     await renew(42)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from ispflow.exceptions import LockAcquisitionError
from ispflow.observability import Tracer, create_tracer
from ispflow.observability.attributes import ATTR_LOCK_KEY

logger = logging.getLogger(__name__)


def aggregate_lock_key(aggregate_type: str, aggregate_id: int) -> str:
    return f"{aggregate_type.lower()}:{aggregate_id}"


@dataclass(frozen=True)
class LockInfo:
    key: str
    acquired_at: datetime


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLockManager:
    """
    In-process mutual exclusion keyed by string.

    Lock objects are created on first use and dropped once no task holds or
    waits for them, so the key space can be unbounded.
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._entries: dict[str, _Entry] = {}

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[LockInfo]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Args:
            key: Lock key, usually from ``aggregate_lock_key``
            timeout: Maximum seconds to wait (None = wait forever)

        Raises:
            LockAcquisitionError: If the lock is not acquired within timeout
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1

        try:
            with self._tracer.span("ispflow.lock.acquire", {ATTR_LOCK_KEY: key}):
                try:
                    if timeout is None:
                        await entry.lock.acquire()
                    else:
                        await asyncio.wait_for(entry.lock.acquire(), timeout)
                except TimeoutError:
                    logger.warning(
                        "Timed out waiting for lock %s",
                        key,
                        extra={"lock_key": key, "timeout": timeout},
                    )
                    raise LockAcquisitionError(key, timeout) from None

            try:
                logger.debug("Acquired lock %s", key, extra={"lock_key": key})
                yield LockInfo(key=key, acquired_at=datetime.now(UTC))
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["KeyedLockManager", "LockInfo", "aggregate_lock_key"]
