"""
Cancellable periodic loop shared by the background services.

The outbox dispatcher, the domain expiration monitor and the exchange rate
sweeper all run one "cycle" at a time on an interval, back off when a cycle
fails, and drain the in-flight cycle on shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod

from ispflow.retry import BackoffConfig, calculate_backoff

logger = logging.getLogger(__name__)


class BackgroundLoop(ABC):
    """
    Base class for a service that repeats ``run_cycle`` until stopped.

    Subclasses implement ``run_cycle``; returning True asks for the next
    cycle to start immediately (more work is waiting).

    Example:
        >>> service.start()
        >>> service.notify()          # wake up early
        >>> await service.stop(timeout=10.0)
    """

    name = "background-loop"

    def __init__(self, interval: float, backoff: BackoffConfig | None = None) -> None:
        self._interval = interval
        self._backoff = backoff or BackoffConfig(initial_delay=1.0, max_delay=60.0)
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._consecutive_failures = 0

    @abstractmethod
    async def run_cycle(self) -> bool:
        """Run one cycle. Return True if another cycle should start right away."""

    @property
    def is_running(self) -> bool:
        """True from ``start()`` until the loop has exited."""
        return self._running or (self._task is not None and not self._task.done())

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def notify(self) -> None:
        """Wake the loop so the next cycle starts without waiting for the interval."""
        self._wake_event.set()

    async def run(self) -> None:
        """
        Run cycles until ``stop()`` is called.

        Exceptions from a cycle are logged and followed by an exponential
        backoff; they never end the loop.
        """
        if self._running:
            raise RuntimeError(f"{self.name} is already running")

        self._running = True
        logger.info("%s started", self.name, extra={"service": self.name})
        try:
            while not self._stop_event.is_set():
                self._wake_event.clear()
                try:
                    more_work = await self.run_cycle()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    delay = calculate_backoff(self._consecutive_failures, self._backoff)
                    self._consecutive_failures += 1
                    logger.error(
                        "%s cycle failed: %s; retrying in %.1fs",
                        self.name,
                        e,
                        delay,
                        exc_info=True,
                        extra={
                            "service": self.name,
                            "consecutive_failures": self._consecutive_failures,
                        },
                    )
                    await self._sleep(delay)
                    continue

                self._consecutive_failures = 0
                if not more_work:
                    await self._sleep(self._interval)
        finally:
            self._running = False
            self._stop_event.clear()
            logger.info("%s stopped", self.name, extra={"service": self.name})

    async def _sleep(self, delay: float) -> None:
        if self._stop_event.is_set():
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._wake_event.wait(), timeout=delay)

    def start(self) -> asyncio.Task[None]:
        """Run the loop in a background task and return the task."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self.run(), name=self.name)
        return self._task

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the loop, letting an in-flight cycle finish.

        If the cycle is still running after ``timeout`` seconds the task is
        cancelled.
        """
        self._stop_event.set()
        self._wake_event.set()

        task = self._task
        if task is None or task.done():
            self._task = None
            if not self._running:
                self._stop_event.clear()
            return

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "%s did not stop within %.1fs, cancelling",
                self.name,
                timeout,
                extra={"service": self.name, "timeout": timeout},
            )
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        finally:
            self._task = None
            self._stop_event.clear()


__all__ = ["BackgroundLoop"]
