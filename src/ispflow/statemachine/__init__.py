"""
Table-driven lifecycle state machines.

``DOMAIN_STATE_MACHINE`` and ``ORDER_STATE_MACHINE`` are built once at import
and shared by reference.
"""

from ispflow.statemachine.domain import (
    DOMAIN_STATE_MACHINE,
    DomainStatus,
    DomainTransition,
)
from ispflow.statemachine.engine import StateMachine
from ispflow.statemachine.order import (
    ORDER_STATE_MACHINE,
    OrderStatus,
    OrderTransition,
)

__all__ = [
    "StateMachine",
    "DomainStatus",
    "DomainTransition",
    "DOMAIN_STATE_MACHINE",
    "OrderStatus",
    "OrderTransition",
    "ORDER_STATE_MACHINE",
]
