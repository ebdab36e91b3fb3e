"""Timeout guard for calls to external collaborators."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from ispflow.exceptions import DependencyTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_timeout(dependency: str, awaitable: Awaitable[T], timeout: float) -> T:
    """
    Await an external call, giving up after ``timeout`` seconds.

    Args:
        dependency: Name used in errors and logs (e.g. "registrar.register")
        awaitable: The pending call
        timeout: Seconds to wait

    Raises:
        DependencyTimeoutError: If the call does not finish in time. The call
            is cancelled.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError:
        logger.warning(
            "%s timed out after %.1fs",
            dependency,
            timeout,
            extra={"dependency": dependency, "timeout": timeout},
        )
        raise DependencyTimeoutError(dependency, timeout) from None


__all__ = ["call_with_timeout"]
