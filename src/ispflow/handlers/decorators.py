"""
Event handler decorators.

``@handles`` marks a method as the handler for one event class. Objects
carrying such methods are registered in one call with
``EventHandlerRegistry.register_object``.

Example:
    >>> class Notifications:
    ...     @handles(DomainRenewed)
    ...     async def on_domain_renewed(self, event: DomainRenewed) -> None:
    ...         ...
"""

from collections.abc import Callable
from typing import Any, TypeVar

from ispflow.events.base import DomainEvent

F = TypeVar("F", bound=Callable[..., Any])


def handles(event_type: type[DomainEvent]) -> Callable[[F], F]:
    """
    Mark an async method as the handler for ``event_type``.

    Handler signature: ``async def handler(self, event: EventType) -> None``.
    A handler signals failure by raising; the dispatcher then retries the
    whole record, so handlers must be idempotent.
    """

    def decorator(func: F) -> F:
        func._handles_event_type = event_type  # type: ignore[attr-defined]
        return func

    return decorator


def get_handled_event_type(func: Callable[..., Any]) -> type[DomainEvent] | None:
    """Return the event type a decorated function handles, or None."""
    return getattr(func, "_handles_event_type", None)


def is_event_handler(func: Callable[..., Any]) -> bool:
    return hasattr(func, "_handles_event_type")


__all__ = [
    "handles",
    "get_handled_event_type",
    "is_event_handler",
]
