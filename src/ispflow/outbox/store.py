"""
Transactional outbox store.

Events are appended in the same transaction as the aggregate change that
raised them, then relayed to handlers by the dispatcher. A record is pending
until ``processed_at`` is set; once set it is never cleared.

Records are ordered by an integer insertion sequence (the primary key), so
"oldest first" never depends on clock resolution.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import case, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ispflow.events.base import DomainEvent
from ispflow.exceptions import OutboxAppendError
from ispflow.observability import Tracer, create_tracer
from ispflow.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_OUTBOX_ID,
)
from ispflow.persistence._connection import execute_with_connection
from ispflow.persistence.schema import outbox_events
from ispflow.serialization import json_dumps

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


@dataclass
class OutboxRecord:
    """
    A persisted event plus its dispatch bookkeeping.

    Attributes:
        id: Insertion sequence number
        event_data: JSON text of the event's dictionary form
        processed_at: None while pending
        retry_count: Number of failed dispatch attempts
        last_error: Error message from the most recent failed attempt
    """

    id: int
    event_id: UUID
    event_type: str
    aggregate_type: str
    aggregate_id: int
    correlation_id: str
    event_data: str
    occurred_at: datetime
    created_at: datetime
    processed_at: datetime | None = None
    retry_count: int = 0
    last_error: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.processed_at is None

    @property
    def aggregate_key(self) -> tuple[str, int]:
        return (self.aggregate_type, self.aggregate_id)


@dataclass(frozen=True)
class OutboxStats:
    pending_count: int = 0
    processed_count: int = 0
    oldest_pending: datetime | None = None
    max_retries: int = 0


@runtime_checkable
class OutboxStore(Protocol):
    """Protocol for outbox stores."""

    async def append(self, events: Sequence[DomainEvent]) -> list[int]:
        """
        Append events, in order, to the outbox.

        Raises:
            OutboxAppendError: If any record cannot be written. Callers must
                let this abort the surrounding unit of work.
        """
        ...

    async def fetch_pending(self, limit: int = 100) -> list[OutboxRecord]:
        """Return up to ``limit`` pending records, oldest first."""
        ...

    async def mark_processed(self, record_id: int) -> None:
        """Set processed_at. A no-op for records that are already processed."""
        ...

    async def increment_retry(self, record_id: int, error: str) -> int:
        """Record a failed attempt and return the new retry count."""
        ...

    async def get_stats(self) -> OutboxStats: ...

    async def cleanup_processed(self, days: int = 7) -> int:
        """Delete processed records older than ``days``. Returns the count."""
        ...


def _serialize(event: DomainEvent) -> str:
    return json_dumps(event.to_dict())


def _truncate(error: str) -> str:
    return error[:MAX_ERROR_LENGTH]


class SQLAlchemyOutboxStore:
    """
    Outbox store backed by the ``outbox_events`` table.

    Construct it with the unit of work's connection to append inside the
    caller's transaction, or with the engine for the dispatcher side, where
    each call commits on its own.

    Example:
        >>> async with engine.begin() as conn:
        ...     await orders.save(order)          # same conn
        ...     await SQLAlchemyOutboxStore(conn).append([event])
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.conn = conn

    @property
    def _db_system(self) -> str:
        return self.conn.dialect.name

    async def append(self, events: Sequence[DomainEvent]) -> list[int]:
        if not events:
            return []

        event_types = [event.event_type for event in events]
        with self._tracer.span(
            "ispflow.outbox.append",
            {
                ATTR_EVENT_COUNT: len(events),
                ATTR_DB_SYSTEM: self._db_system,
            },
        ):
            now = datetime.now(UTC)
            ids: list[int] = []
            try:
                async with execute_with_connection(self.conn, transactional=True) as conn:
                    for event in events:
                        result = await conn.execute(
                            insert(outbox_events).values(
                                event_id=str(event.event_id),
                                event_type=event.event_type,
                                aggregate_type=event.aggregate_type,
                                aggregate_id=event.aggregate_id,
                                correlation_id=event.correlation_id,
                                event_data=_serialize(event),
                                occurred_at=event.occurred_at,
                                created_at=now,
                                retry_count=0,
                            )
                        )
                        ids.append(int(result.inserted_primary_key[0]))
            except SQLAlchemyError as e:
                logger.error(
                    "Failed to append %d event(s) to outbox: %s",
                    len(events),
                    e,
                    extra={"event_types": event_types},
                )
                raise OutboxAppendError(event_types, str(e)) from e

            logger.debug(
                "Appended %d event(s) to outbox",
                len(ids),
                extra={"outbox_ids": ids, "event_types": event_types},
            )
            return ids

    async def fetch_pending(self, limit: int = 100) -> list[OutboxRecord]:
        with self._tracer.span(
            "ispflow.outbox.fetch_pending",
            {ATTR_BATCH_SIZE: limit, ATTR_DB_SYSTEM: self._db_system},
        ):
            query = (
                select(outbox_events)
                .where(outbox_events.c.processed_at.is_(None))
                .order_by(outbox_events.c.id)
                .limit(limit)
            )
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(query)
                rows = result.mappings().all()

            return [
                OutboxRecord(
                    id=row["id"],
                    event_id=UUID(row["event_id"]),
                    event_type=row["event_type"],
                    aggregate_type=row["aggregate_type"],
                    aggregate_id=row["aggregate_id"],
                    correlation_id=row["correlation_id"],
                    event_data=row["event_data"],
                    occurred_at=row["occurred_at"],
                    created_at=row["created_at"],
                    processed_at=row["processed_at"],
                    retry_count=row["retry_count"],
                    last_error=row["last_error"],
                )
                for row in rows
            ]

    async def mark_processed(self, record_id: int) -> None:
        with self._tracer.span(
            "ispflow.outbox.mark_processed",
            {ATTR_OUTBOX_ID: record_id, ATTR_DB_SYSTEM: self._db_system},
        ):
            query = (
                update(outbox_events)
                .where(
                    outbox_events.c.id == record_id,
                    outbox_events.c.processed_at.is_(None),
                )
                .values(processed_at=datetime.now(UTC))
            )
            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(query)

    async def increment_retry(self, record_id: int, error: str) -> int:
        with self._tracer.span(
            "ispflow.outbox.increment_retry",
            {ATTR_OUTBOX_ID: record_id, ATTR_DB_SYSTEM: self._db_system},
        ):
            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(
                    update(outbox_events)
                    .where(outbox_events.c.id == record_id)
                    .values(
                        retry_count=outbox_events.c.retry_count + 1,
                        last_error=_truncate(error),
                    )
                )
                result = await conn.execute(
                    select(outbox_events.c.retry_count).where(outbox_events.c.id == record_id)
                )
                count = result.scalar()
            return int(count or 0)

    async def get_stats(self) -> OutboxStats:
        with self._tracer.span("ispflow.outbox.get_stats", {ATTR_DB_SYSTEM: self._db_system}):
            pending = outbox_events.c.processed_at.is_(None)
            query = select(
                func.sum(case((pending, 1), else_=0)),
                func.sum(case((pending, 0), else_=1)),
                func.min(case((pending, outbox_events.c.created_at), else_=None)),
                func.max(case((pending, outbox_events.c.retry_count), else_=0)),
            )
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(query)
                row = result.one()

            oldest = row[2]
            if isinstance(oldest, str):
                # Aggregates over a CASE lose the column type on SQLite
                oldest = datetime.fromisoformat(oldest)
            if oldest is not None and oldest.tzinfo is None:
                oldest = oldest.replace(tzinfo=UTC)

            return OutboxStats(
                pending_count=int(row[0] or 0),
                processed_count=int(row[1] or 0),
                oldest_pending=oldest,
                max_retries=int(row[3] or 0),
            )

    async def cleanup_processed(self, days: int = 7) -> int:
        with self._tracer.span(
            "ispflow.outbox.cleanup",
            {"older_than_days": days, ATTR_DB_SYSTEM: self._db_system},
        ):
            cutoff = datetime.now(UTC) - timedelta(days=days)
            query = delete(outbox_events).where(
                outbox_events.c.processed_at.is_not(None),
                outbox_events.c.processed_at < cutoff,
            )
            async with execute_with_connection(self.conn, transactional=True) as conn:
                result = await conn.execute(query)
            return result.rowcount


class InMemoryOutboxStore:
    """
    In-memory outbox store for tests.

    Example:
        >>> store = InMemoryOutboxStore()
        >>> [record_id] = await store.append([event])
        >>> pending = await store.fetch_pending()
        >>> await store.mark_processed(pending[0].id)
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._records: dict[int, OutboxRecord] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    @property
    def records(self) -> list[OutboxRecord]:
        """All records in insertion order (test helper)."""
        return [self._records[key] for key in sorted(self._records)]

    async def append(self, events: Sequence[DomainEvent]) -> list[int]:
        with self._tracer.span(
            "ispflow.outbox.append",
            {ATTR_EVENT_COUNT: len(events), ATTR_DB_SYSTEM: "memory"},
        ):
            now = datetime.now(UTC)
            ids: list[int] = []
            async with self._lock:
                for event in events:
                    record_id = self._next_id
                    self._next_id += 1
                    self._records[record_id] = OutboxRecord(
                        id=record_id,
                        event_id=event.event_id,
                        event_type=event.event_type,
                        aggregate_type=event.aggregate_type,
                        aggregate_id=event.aggregate_id,
                        correlation_id=event.correlation_id,
                        event_data=_serialize(event),
                        occurred_at=event.occurred_at,
                        created_at=now,
                    )
                    ids.append(record_id)
            return ids

    async def fetch_pending(self, limit: int = 100) -> list[OutboxRecord]:
        with self._tracer.span(
            "ispflow.outbox.fetch_pending",
            {ATTR_BATCH_SIZE: limit, ATTR_DB_SYSTEM: "memory"},
        ):
            async with self._lock:
                pending = [r for r in self.records if r.is_pending]
            return pending[:limit]

    async def mark_processed(self, record_id: int) -> None:
        with self._tracer.span(
            "ispflow.outbox.mark_processed",
            {ATTR_OUTBOX_ID: record_id, ATTR_DB_SYSTEM: "memory"},
        ):
            async with self._lock:
                record = self._records.get(record_id)
                if record is not None and record.processed_at is None:
                    record.processed_at = datetime.now(UTC)

    async def increment_retry(self, record_id: int, error: str) -> int:
        with self._tracer.span(
            "ispflow.outbox.increment_retry",
            {ATTR_OUTBOX_ID: record_id, ATTR_DB_SYSTEM: "memory"},
        ):
            async with self._lock:
                record = self._records.get(record_id)
                if record is None:
                    return 0
                record.retry_count += 1
                record.last_error = _truncate(error)
                return record.retry_count

    async def get_stats(self) -> OutboxStats:
        async with self._lock:
            records = list(self._records.values())
        pending = [r for r in records if r.is_pending]
        return OutboxStats(
            pending_count=len(pending),
            processed_count=len(records) - len(pending),
            oldest_pending=min((r.created_at for r in pending), default=None),
            max_retries=max((r.retry_count for r in pending), default=0),
        )

    async def cleanup_processed(self, days: int = 7) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        async with self._lock:
            stale = [
                key
                for key, record in self._records.items()
                if record.processed_at is not None and record.processed_at < cutoff
            ]
            for key in stale:
                del self._records[key]
        return len(stale)

    async def clear(self) -> None:
        async with self._lock:
            self._records.clear()


__all__ = [
    "OutboxRecord",
    "OutboxStats",
    "OutboxStore",
    "SQLAlchemyOutboxStore",
    "InMemoryOutboxStore",
]
