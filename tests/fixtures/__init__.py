"""
Shared test fixtures for ispflow.

Usage:
    from tests.fixtures import FixedClock, SampleEvent, create_event, seed_customer
"""

from tests.fixtures.clock import FixedClock
from tests.fixtures.events import SampleEvent, SampleUpdated, create_event
from tests.fixtures.seed import (
    pending_event_types,
    seed_customer,
    seed_domain,
    seed_order,
    seed_registrar,
    seed_service,
)

__all__ = [
    "FixedClock",
    "SampleEvent",
    "SampleUpdated",
    "create_event",
    "pending_event_types",
    "seed_customer",
    "seed_domain",
    "seed_order",
    "seed_registrar",
    "seed_service",
]
