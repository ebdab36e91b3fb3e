"""
Transactional outbox: the store events are appended to and the dispatcher
that relays them to handlers.
"""

from ispflow.outbox.dispatcher import (
    DispatchReport,
    HandlerTimeoutError,
    OutboxDispatcher,
    PoisonCallback,
)
from ispflow.outbox.store import (
    InMemoryOutboxStore,
    OutboxRecord,
    OutboxStats,
    OutboxStore,
    SQLAlchemyOutboxStore,
)

__all__ = [
    "OutboxRecord",
    "OutboxStats",
    "OutboxStore",
    "SQLAlchemyOutboxStore",
    "InMemoryOutboxStore",
    "OutboxDispatcher",
    "DispatchReport",
    "HandlerTimeoutError",
    "PoisonCallback",
]
