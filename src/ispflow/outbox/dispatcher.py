"""
Outbox dispatcher.

Drains pending outbox records and delivers each one to every handler
registered for its event type, at least once.

Per record: resolve handlers, deserialize, await each handler in
registration order. If all succeed the record is marked processed; if any
raises, the record stays pending with its retry count incremented and the
whole record is retried on a later cycle. Handlers must therefore be
idempotent.

Ordering is guaranteed per aggregate only. Records of one aggregate are
handled sequentially in insertion order, and a failure defers the rest of
that aggregate's records to the next cycle. Different aggregates are
dispatched concurrently, bounded by ``max_concurrency``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ispflow.background import BackgroundLoop
from ispflow.config import DispatcherConfig
from ispflow.events.registry import EventRegistry, default_registry
from ispflow.handlers.registry import EventHandlerRegistry, RegisteredHandler
from ispflow.observability import Tracer, create_tracer
from ispflow.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_BATCH_SIZE,
    ATTR_CORRELATION_ID,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_COUNT,
    ATTR_OUTBOX_ID,
    ATTR_RETRY_COUNT,
)
from ispflow.outbox.store import OutboxRecord, OutboxStore
from ispflow.serialization import json_loads

logger = logging.getLogger(__name__)

PoisonCallback = Callable[[OutboxRecord, BaseException], Awaitable[None] | None]
"""Called when a record reaches the retry ceiling."""


class HandlerTimeoutError(Exception):
    """Raised when a handler exceeds the dispatcher's handler timeout."""

    def __init__(self, handler_name: str, timeout: float) -> None:
        self.handler_name = handler_name
        self.timeout = timeout
        super().__init__(f"Handler {handler_name} timed out after {timeout:g}s")


@dataclass
class DispatchReport:
    """
    Outcome of one dispatch cycle.

    Attributes:
        fetched: Records fetched from the store
        processed: Records marked processed (including those with no handlers)
        unhandled: Records with no registered handler
        failed: Records whose handlers raised
        deferred: Records skipped because an earlier record of the same
            aggregate failed in this cycle
        poisoned: Ids of records at or past the retry ceiling
    """

    fetched: int = 0
    processed: int = 0
    unhandled: int = 0
    failed: int = 0
    deferred: int = 0
    poisoned: list[int] = field(default_factory=list)


class OutboxDispatcher(BackgroundLoop):
    """
    Background loop delivering outbox records to handlers.

    Example:
        >>> dispatcher = OutboxDispatcher(store, handlers)
        >>> report = await dispatcher.dispatch_pending()   # one cycle
        >>> dispatcher.start()                             # or run forever
        >>> await dispatcher.stop(timeout=10.0)
    """

    name = "outbox-dispatcher"

    def __init__(
        self,
        store: OutboxStore,
        handlers: EventHandlerRegistry,
        event_registry: EventRegistry | None = None,
        config: DispatcherConfig | None = None,
        *,
        on_poison: PoisonCallback | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._config = config or DispatcherConfig()
        super().__init__(self._config.poll_interval, self._config.error_backoff)
        self._store = store
        self._handlers = handlers
        self._event_registry = event_registry or default_registry
        self._on_poison = on_poison
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._last_report: DispatchReport | None = None

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    @property
    def last_report(self) -> DispatchReport | None:
        return self._last_report

    async def run_cycle(self) -> bool:
        report = await self.dispatch_pending()
        # A full, clean batch means more records are probably waiting
        return report.fetched >= self._config.batch_size and report.failed == 0

    async def dispatch_pending(self) -> DispatchReport:
        """
        Run one dispatch cycle.

        Raises:
            Exception: Store errors (fetch, mark processed, increment retry)
                propagate after every aggregate group has finished.
        """
        report = DispatchReport()
        with self._tracer.span(
            "ispflow.dispatcher.cycle",
            {ATTR_BATCH_SIZE: self._config.batch_size},
        ):
            records = await self._store.fetch_pending(self._config.batch_size)
            report.fetched = len(records)
            if not records:
                self._last_report = report
                return report

            groups: dict[tuple[str, int], list[OutboxRecord]] = {}
            for record in records:
                groups.setdefault(record.aggregate_key, []).append(record)

            semaphore = asyncio.Semaphore(self._config.max_concurrency)
            results = await asyncio.gather(
                *(self._dispatch_group(group, semaphore, report) for group in groups.values()),
                return_exceptions=True,
            )

            self._last_report = report
            errors = [result for result in results if isinstance(result, BaseException)]
            for error in errors:
                if isinstance(error, asyncio.CancelledError):
                    raise error
            if errors:
                raise errors[0]

        if report.fetched:
            logger.debug(
                "Dispatch cycle: %d fetched, %d processed, %d failed, %d deferred",
                report.fetched,
                report.processed,
                report.failed,
                report.deferred,
                extra={
                    "fetched": report.fetched,
                    "processed": report.processed,
                    "failed": report.failed,
                    "deferred": report.deferred,
                },
            )
        return report

    async def _dispatch_group(
        self,
        group: list[OutboxRecord],
        semaphore: asyncio.Semaphore,
        report: DispatchReport,
    ) -> None:
        async with semaphore:
            for index, record in enumerate(group):
                if not await self._dispatch_record(record, report):
                    remaining = len(group) - index - 1
                    if remaining:
                        report.deferred += remaining
                        logger.debug(
                            "Deferred %d record(s) of %s %s after failure of record %d",
                            remaining,
                            record.aggregate_type,
                            record.aggregate_id,
                            record.id,
                        )
                    return

    async def _dispatch_record(self, record: OutboxRecord, report: DispatchReport) -> bool:
        handlers = self._handlers.handlers_for(record.event_type)

        with self._tracer.span(
            "ispflow.dispatcher.record",
            {
                ATTR_OUTBOX_ID: record.id,
                ATTR_EVENT_TYPE: record.event_type,
                ATTR_AGGREGATE_TYPE: record.aggregate_type,
                ATTR_AGGREGATE_ID: record.aggregate_id,
                ATTR_CORRELATION_ID: record.correlation_id,
                ATTR_HANDLER_COUNT: len(handlers),
                ATTR_RETRY_COUNT: record.retry_count,
            },
        ):
            if not handlers:
                await self._store.mark_processed(record.id)
                report.processed += 1
                report.unhandled += 1
                return True

            try:
                event = self._event_registry.deserialize(json_loads(record.event_data))
                for handler in handlers:
                    await self._invoke(handler, event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await self._record_failure(record, e, report)
                return False

            await self._store.mark_processed(record.id)
            report.processed += 1
            return True

    async def _invoke(self, handler: RegisteredHandler, event: object) -> None:
        try:
            await asyncio.wait_for(handler(event), timeout=self._config.handler_timeout)
        except TimeoutError:
            raise HandlerTimeoutError(handler.name, self._config.handler_timeout) from None

    async def _record_failure(
        self,
        record: OutboxRecord,
        error: Exception,
        report: DispatchReport,
    ) -> None:
        message = f"{type(error).__name__}: {error}"
        retry_count = await self._store.increment_retry(record.id, message)
        report.failed += 1

        log_extra = {
            "outbox_id": record.id,
            "event_id": str(record.event_id),
            "event_type": record.event_type,
            "aggregate_type": record.aggregate_type,
            "aggregate_id": record.aggregate_id,
            "correlation_id": record.correlation_id,
            "retry_count": retry_count,
            "error": message,
        }

        if retry_count < self._config.max_retries:
            logger.warning(
                "Handler failed for outbox record %d (%s), attempt %d: %s",
                record.id,
                record.event_type,
                retry_count,
                message,
                extra=log_extra,
            )
            return

        report.poisoned.append(record.id)
        logger.critical(
            "Outbox record %d (%s) has failed %d times and needs attention: %s",
            record.id,
            record.event_type,
            retry_count,
            message,
            extra=log_extra,
        )
        if self._on_poison is not None and retry_count == self._config.max_retries:
            await self._notify_poison(record, error)

    async def _notify_poison(self, record: OutboxRecord, error: Exception) -> None:
        assert self._on_poison is not None
        try:
            result = self._on_poison(record, error)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "Poison callback failed for outbox record %d",
                record.id,
                extra={"outbox_id": record.id},
            )


__all__ = [
    "DispatchReport",
    "HandlerTimeoutError",
    "OutboxDispatcher",
    "PoisonCallback",
]
