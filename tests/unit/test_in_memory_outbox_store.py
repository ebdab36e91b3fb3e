"""Unit tests for InMemoryOutboxStore."""

from datetime import UTC, datetime, timedelta

import pytest

from ispflow.outbox import InMemoryOutboxStore, OutboxStore
from ispflow.outbox.store import MAX_ERROR_LENGTH
from ispflow.serialization import json_loads
from tests.fixtures import SampleEvent, SampleUpdated


class TestInMemoryOutboxStore:
    def test_satisfies_protocol(self, in_memory_store: InMemoryOutboxStore) -> None:
        assert isinstance(in_memory_store, OutboxStore)

    @pytest.mark.asyncio
    async def test_append_assigns_increasing_ids(
        self, in_memory_store: InMemoryOutboxStore
    ) -> None:
        ids = await in_memory_store.append(
            [SampleEvent(aggregate_id=1), SampleUpdated(aggregate_id=1, value=2)]
        )

        assert ids == [1, 2]

    @pytest.mark.asyncio
    async def test_record_carries_envelope(self, in_memory_store: InMemoryOutboxStore) -> None:
        event = SampleUpdated(aggregate_id=3, value=7, correlation_id="corr-1")

        await in_memory_store.append([event])
        [record] = await in_memory_store.fetch_pending()

        assert record.event_id == event.event_id
        assert record.event_type == "SampleUpdated"
        assert record.aggregate_key == ("Sample", 3)
        assert record.correlation_id == "corr-1"
        assert record.retry_count == 0
        assert record.is_pending
        assert json_loads(record.event_data)["value"] == 7

    @pytest.mark.asyncio
    async def test_fetch_pending_oldest_first_with_limit(
        self, in_memory_store: InMemoryOutboxStore
    ) -> None:
        await in_memory_store.append([SampleEvent(aggregate_id=n) for n in range(5)])

        pending = await in_memory_store.fetch_pending(limit=3)

        assert [r.aggregate_id for r in pending] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_mark_processed_is_idempotent(
        self, in_memory_store: InMemoryOutboxStore
    ) -> None:
        """processed_at is set once and never overwritten."""
        [record_id] = await in_memory_store.append([SampleEvent(aggregate_id=1)])

        await in_memory_store.mark_processed(record_id)
        first = in_memory_store.records[0].processed_at
        await in_memory_store.mark_processed(record_id)

        assert first is not None
        assert in_memory_store.records[0].processed_at == first
        assert await in_memory_store.fetch_pending() == []

    @pytest.mark.asyncio
    async def test_increment_retry(self, in_memory_store: InMemoryOutboxStore) -> None:
        [record_id] = await in_memory_store.append([SampleEvent(aggregate_id=1)])

        assert await in_memory_store.increment_retry(record_id, "first") == 1
        assert await in_memory_store.increment_retry(record_id, "x" * 5000) == 2

        record = in_memory_store.records[0]
        assert record.is_pending
        assert record.last_error is not None
        assert len(record.last_error) == MAX_ERROR_LENGTH

    @pytest.mark.asyncio
    async def test_increment_retry_unknown_record(
        self, in_memory_store: InMemoryOutboxStore
    ) -> None:
        assert await in_memory_store.increment_retry(99, "missing") == 0

    @pytest.mark.asyncio
    async def test_stats(self, in_memory_store: InMemoryOutboxStore) -> None:
        ids = await in_memory_store.append([SampleEvent(aggregate_id=n) for n in range(3)])
        await in_memory_store.mark_processed(ids[0])
        await in_memory_store.increment_retry(ids[1], "boom")

        stats = await in_memory_store.get_stats()

        assert stats.pending_count == 2
        assert stats.processed_count == 1
        assert stats.max_retries == 1
        assert stats.oldest_pending is not None

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_old_processed(
        self, in_memory_store: InMemoryOutboxStore
    ) -> None:
        ids = await in_memory_store.append([SampleEvent(aggregate_id=n) for n in range(3)])
        await in_memory_store.mark_processed(ids[0])
        await in_memory_store.mark_processed(ids[1])
        in_memory_store.records[0].processed_at = datetime.now(UTC) - timedelta(days=30)

        removed = await in_memory_store.cleanup_processed(days=7)

        assert removed == 1
        assert [r.id for r in in_memory_store.records] == [ids[1], ids[2]]
