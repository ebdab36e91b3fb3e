"""Lifecycle of a registered domain name."""

from __future__ import annotations

from enum import Enum

from ispflow.statemachine.engine import StateMachine


class DomainStatus(Enum):
    PENDING_REGISTRATION = "PendingRegistration"
    """Paid for, registrar call not yet confirmed."""

    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    PENDING_TRANSFER = "PendingTransfer"
    PENDING_RENEWAL = "PendingRenewal"
    EXPIRED = "Expired"

    CANCELLED = "Cancelled"
    """Terminal. Soft delete; the row stays for billing history."""

    TRANSFERRED_OUT = "TransferredOut"
    """Terminal."""


class DomainTransition(Enum):
    REGISTER = "Register"
    SUSPEND = "Suspend"
    REACTIVATE = "Reactivate"
    RENEW = "Renew"
    EXPIRE = "Expire"
    CANCEL = "Cancel"
    TRANSFER_IN = "TransferIn"
    TRANSFER_OUT = "TransferOut"


DOMAIN_STATE_MACHINE: StateMachine[DomainStatus, DomainTransition] = StateMachine(
    "Domain",
    DomainStatus,
    DomainTransition,
    {
        DomainStatus.PENDING_REGISTRATION: {
            DomainTransition.REGISTER: DomainStatus.ACTIVE,
            DomainTransition.CANCEL: DomainStatus.CANCELLED,
        },
        DomainStatus.ACTIVE: {
            DomainTransition.SUSPEND: DomainStatus.SUSPENDED,
            DomainTransition.RENEW: DomainStatus.ACTIVE,
            DomainTransition.EXPIRE: DomainStatus.EXPIRED,
            DomainTransition.CANCEL: DomainStatus.CANCELLED,
            DomainTransition.TRANSFER_OUT: DomainStatus.TRANSFERRED_OUT,
        },
        DomainStatus.SUSPENDED: {
            DomainTransition.REACTIVATE: DomainStatus.ACTIVE,
            DomainTransition.EXPIRE: DomainStatus.EXPIRED,
            DomainTransition.CANCEL: DomainStatus.CANCELLED,
        },
        DomainStatus.PENDING_TRANSFER: {
            DomainTransition.TRANSFER_IN: DomainStatus.ACTIVE,
            DomainTransition.CANCEL: DomainStatus.CANCELLED,
        },
        DomainStatus.PENDING_RENEWAL: {
            DomainTransition.RENEW: DomainStatus.ACTIVE,
            DomainTransition.EXPIRE: DomainStatus.EXPIRED,
            DomainTransition.CANCEL: DomainStatus.CANCELLED,
        },
        DomainStatus.EXPIRED: {
            DomainTransition.RENEW: DomainStatus.ACTIVE,
            DomainTransition.CANCEL: DomainStatus.CANCELLED,
        },
        DomainStatus.CANCELLED: {},
        DomainStatus.TRANSFERRED_OUT: {},
    },
)


__all__ = ["DomainStatus", "DomainTransition", "DOMAIN_STATE_MACHINE"]
