"""Library exceptions for the ispflow package."""

from enum import Enum


class IspFlowError(Exception):
    """Base exception for ispflow."""

    pass


class InvalidTransitionError(IspFlowError):
    """Raised when a lifecycle transition is not present in the transition table."""

    def __init__(self, machine: str, state: Enum, transition: Enum) -> None:
        self.machine = machine
        self.state = state
        self.transition = transition
        super().__init__(
            f"{machine}: transition '{transition.value}' is not allowed "
            f"from state '{state.value}'"
        )


class TransitionTableError(IspFlowError):
    """Raised when a transition table references states or transitions outside its enums."""

    pass


class AggregateNotFoundError(IspFlowError):
    """Raised when an aggregate cannot be found."""

    def __init__(self, aggregate_type: str, aggregate_id: int) -> None:
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        super().__init__(f"{aggregate_type} with ID {aggregate_id} not found")


class ExchangeRateNotFoundError(IspFlowError):
    """Raised when no active exchange rate applies to a currency pair."""

    def __init__(self, base_currency: str, target_currency: str, at: object = None) -> None:
        self.base_currency = base_currency
        self.target_currency = target_currency
        self.at = at
        when = f" at {at}" if at is not None else ""
        super().__init__(
            f"No active exchange rate from {base_currency} to {target_currency}{when}"
        )


class OutboxError(IspFlowError):
    """Raised when there's an error in the outbox store."""

    pass


class OutboxAppendError(OutboxError):
    """Raised when events cannot be appended to the outbox.

    Appending happens inside the caller's unit of work, so this error aborts
    the aggregate mutation that produced the events.
    """

    def __init__(self, event_types: list[str], message: str) -> None:
        self.event_types = event_types
        super().__init__(f"Failed to append {', '.join(event_types) or 'events'}: {message}")


class DependencyError(IspFlowError):
    """Raised when an external collaborator (registrar, payment, provisioner) fails."""

    def __init__(self, dependency: str, message: str) -> None:
        self.dependency = dependency
        super().__init__(f"{dependency} failed: {message}")


class DependencyTimeoutError(DependencyError):
    """Raised when an external call exceeds its timeout."""

    def __init__(self, dependency: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(dependency, f"timed out after {timeout:g}s")


class LockAcquisitionError(IspFlowError):
    """
    Raised when a per-aggregate lock cannot be acquired.

    Attributes:
        key: The lock key that could not be acquired
        timeout: The timeout value that expired
    """

    def __init__(self, key: str, timeout: float | None = None) -> None:
        self.key = key
        self.timeout = timeout
        reason = f"timed out after {timeout:g}s" if timeout is not None else "not available"
        super().__init__(f"Failed to acquire lock '{key}': {reason}")


class ConfigurationError(IspFlowError):
    """Raised when required configuration is missing or invalid."""

    pass


class WorkflowError(IspFlowError):
    """
    Raised by event handlers when a workflow they triggered failed in a way
    that is worth retrying (infrastructure errors, lock contention).

    The outbox dispatcher counts it like any other handler failure.
    """

    def __init__(self, workflow: str, message: str, correlation_id: str | None = None) -> None:
        self.workflow = workflow
        self.correlation_id = correlation_id
        super().__init__(f"{workflow}: {message}")
