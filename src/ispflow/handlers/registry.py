"""
Event handler registry.

Maps an event type tag to the ordered tuple of async handlers the dispatcher
invokes for it. Handlers can be registered one by one or discovered on an
object through the ``@handles`` decorator.

Example:
    >>> registry = EventHandlerRegistry()
    >>> registry.register(InvoicePaid, lifecycle.on_invoice_paid)
    >>> registry.register_object(notifications)
    >>> registry.handlers_for("InvoicePaid")
    (RegisteredHandler(name='LifecycleHandlers.on_invoice_paid', ...),)
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ispflow.events.base import DomainEvent
from ispflow.handlers.decorators import get_handled_event_type

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]
"""Async handler for a single typed event. Raises to signal failure."""


class HandlerSignatureError(ValueError):
    """Raised when a handler is not an async callable taking exactly one event."""

    def __init__(self, handler_name: str, reason: str) -> None:
        self.handler_name = handler_name
        super().__init__(
            f"Handler '{handler_name}' is invalid: {reason}. "
            f"Expected: async def {handler_name.rsplit('.', 1)[-1]}(event) -> None"
        )


@dataclass(frozen=True)
class RegisteredHandler:
    name: str
    handler: EventHandler

    async def __call__(self, event: DomainEvent) -> None:
        await self.handler(event)


def _event_type_name(event_type: str | type[DomainEvent]) -> str:
    if isinstance(event_type, str):
        return event_type
    field_info = event_type.model_fields.get("event_type")
    if field_info is not None and isinstance(field_info.default, str) and field_info.default:
        return field_info.default
    return event_type.__name__


def _handler_name(handler: Callable[..., Any]) -> str:
    qualname = getattr(handler, "__qualname__", None)
    if qualname:
        return qualname
    return type(handler).__name__


def _validate(name: str, handler: Callable[..., Any]) -> None:
    target = handler.__call__ if not inspect.isroutine(handler) else handler
    if not inspect.iscoroutinefunction(target):
        raise HandlerSignatureError(name, "handler must be an async function")
    try:
        params = list(inspect.signature(handler).parameters.values())
    except (ValueError, TypeError):
        return
    required = [
        p
        for p in params
        if p.default is inspect.Parameter.empty
        and p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    if len(required) != 1:
        raise HandlerSignatureError(
            name, f"takes {len(required)} required positional parameter(s), expected 1"
        )


class EventHandlerRegistry:
    """
    Registry of event handlers keyed by event type tag.

    Registration order is invocation order. Registering the same callable
    twice for one event type is a no-op.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[RegisteredHandler]] = {}
        self._lock = threading.RLock()

    def register(
        self,
        event_type: str | type[DomainEvent],
        handler: EventHandler,
        *,
        name: str | None = None,
    ) -> RegisteredHandler:
        """
        Register an async handler for an event type.

        Args:
            event_type: Event type tag or event class
            handler: ``async (event) -> None``
            name: Name used in logs (defaults to the handler's qualified name)

        Raises:
            HandlerSignatureError: If the handler is not async or takes the
                wrong number of arguments
        """
        type_name = _event_type_name(event_type)
        handler_name = name or _handler_name(handler)
        _validate(handler_name, handler)

        entry = RegisteredHandler(name=handler_name, handler=handler)
        with self._lock:
            handlers = self._handlers.setdefault(type_name, [])
            if any(existing.handler == handler for existing in handlers):
                return next(existing for existing in handlers if existing.handler == handler)
            handlers.append(entry)

        logger.debug(
            "Registered handler %s for %s",
            handler_name,
            type_name,
            extra={"handler": handler_name, "event_type": type_name},
        )
        return entry

    def register_object(self, owner: Any) -> list[RegisteredHandler]:
        """
        Register every ``@handles`` method of ``owner`` in declaration order.

        Returns:
            The registered handlers
        """
        names: list[str] = []
        for klass in reversed(type(owner).__mro__):
            for attr_name in vars(klass):
                if attr_name.startswith("__") or attr_name in names:
                    continue
                names.append(attr_name)

        registered = []
        for attr_name in names:
            attr = getattr(owner, attr_name, None)
            if attr is None:
                continue
            event_type = get_handled_event_type(attr)
            if not isinstance(event_type, type):
                continue
            registered.append(
                self.register(
                    event_type,
                    attr,
                    name=f"{type(owner).__name__}.{attr_name}",
                )
            )
        return registered

    def handlers_for(self, event_type: str | type[DomainEvent]) -> tuple[RegisteredHandler, ...]:
        """Handlers for an event type, in registration order; empty if none."""
        with self._lock:
            return tuple(self._handlers.get(_event_type_name(event_type), ()))

    def registered_types(self) -> list[str]:
        with self._lock:
            return sorted(key for key, handlers in self._handlers.items() if handlers)

    def unregister(self, event_type: str | type[DomainEvent], handler: EventHandler) -> bool:
        with self._lock:
            handlers = self._handlers.get(_event_type_name(event_type), [])
            for index, existing in enumerate(handlers):
                if existing.handler == handler:
                    del handlers[index]
                    return True
            return False

    def __len__(self) -> int:
        with self._lock:
            return sum(len(handlers) for handlers in self._handlers.values())

    def __contains__(self, event_type: str | type[DomainEvent]) -> bool:
        return bool(self.handlers_for(event_type))


__all__ = [
    "EventHandler",
    "EventHandlerRegistry",
    "HandlerSignatureError",
    "RegisteredHandler",
]
