"""Lifecycle of a billable service order."""

from __future__ import annotations

from enum import Enum

from ispflow.statemachine.engine import StateMachine


class OrderStatus(Enum):
    PENDING = "Pending"
    """Created, awaiting payment or provisioning."""

    ACTIVE = "Active"
    SUSPENDED = "Suspended"

    CANCELLED = "Cancelled"
    """Terminal."""

    EXPIRED = "Expired"
    TRIAL = "Trial"


class OrderTransition(Enum):
    ACTIVATE = "Activate"
    SUSPEND = "Suspend"
    RESUME = "Resume"
    CANCEL = "Cancel"
    EXPIRE = "Expire"
    RENEW = "Renew"


ORDER_STATE_MACHINE: StateMachine[OrderStatus, OrderTransition] = StateMachine(
    "Order",
    OrderStatus,
    OrderTransition,
    {
        OrderStatus.PENDING: {
            OrderTransition.ACTIVATE: OrderStatus.ACTIVE,
            OrderTransition.CANCEL: OrderStatus.CANCELLED,
            # Compensation when payment succeeded but provisioning failed
            OrderTransition.SUSPEND: OrderStatus.SUSPENDED,
        },
        OrderStatus.TRIAL: {
            OrderTransition.ACTIVATE: OrderStatus.ACTIVE,
            OrderTransition.CANCEL: OrderStatus.CANCELLED,
            OrderTransition.EXPIRE: OrderStatus.EXPIRED,
            OrderTransition.SUSPEND: OrderStatus.SUSPENDED,
        },
        OrderStatus.ACTIVE: {
            OrderTransition.SUSPEND: OrderStatus.SUSPENDED,
            OrderTransition.CANCEL: OrderStatus.CANCELLED,
            OrderTransition.EXPIRE: OrderStatus.EXPIRED,
            OrderTransition.RENEW: OrderStatus.ACTIVE,
        },
        OrderStatus.SUSPENDED: {
            OrderTransition.RESUME: OrderStatus.ACTIVE,
            OrderTransition.CANCEL: OrderStatus.CANCELLED,
            OrderTransition.EXPIRE: OrderStatus.EXPIRED,
        },
        OrderStatus.EXPIRED: {
            OrderTransition.RENEW: OrderStatus.ACTIVE,
            OrderTransition.CANCEL: OrderStatus.CANCELLED,
        },
        OrderStatus.CANCELLED: {},
    },
)


__all__ = ["OrderStatus", "OrderTransition", "ORDER_STATE_MACHINE"]
