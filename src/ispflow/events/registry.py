"""
Type-tag lookup for stored events.

An outbox row keeps its event as JSON plus the ``event_type`` tag. Before the
dispatcher can hand the row to handlers it needs the pydantic class behind
that tag; this module keeps the tag -> class map.

Usage:
    @register_event
    class DomainRenewed(DomainEvent):
        aggregate_type: str = "Domain"
        ...

    event = default_registry.deserialize(record.event_data)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, TypeVar, overload

if TYPE_CHECKING:
    from ispflow.events.base import DomainEvent

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent", bound="DomainEvent")


class EventTypeNotFoundError(KeyError):
    """No class is registered for a stored event's type tag."""

    def __init__(self, event_type: str, available_types: list[str]) -> None:
        self.event_type = event_type
        self.available_types = available_types
        known = ", ".join(sorted(available_types)) or "none"
        super().__init__(f"No event class for tag '{event_type}' (known tags: {known})")


class DuplicateEventTypeError(ValueError):
    """Two different classes claimed the same type tag."""

    def __init__(
        self,
        event_type: str,
        existing_class: type[DomainEvent],
        new_class: type[DomainEvent],
    ) -> None:
        self.event_type = event_type
        self.existing_class = existing_class
        self.new_class = new_class
        super().__init__(
            f"Tag '{event_type}' belongs to {existing_class.__name__}; "
            f"{new_class.__name__} needs a different one"
        )


def event_type_of(event_class: type[DomainEvent]) -> str:
    """The tag a class is stored under: its ``event_type`` default, else its name."""
    field_info = event_class.model_fields.get("event_type")
    default = field_info.default if field_info is not None else None
    if isinstance(default, str) and default:
        return default
    return event_class.__name__


class EventRegistry:
    """
    Tag -> event class map guarded by a re-entrant lock.

    The catalog registers itself in ``default_registry``; tests build their
    own instance so sample events stay out of the shared one. An empty
    registry is still truthy, so ``registry or default_registry`` never
    swaps out a fresh instance.
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[DomainEvent]] = {}
        self._lock = threading.RLock()

    def register(
        self,
        event_class: type[TEvent],
        event_type: str | None = None,
    ) -> type[TEvent]:
        """
        Add ``event_class`` under ``event_type`` (or its own tag).

        Registering the same class twice is a no-op, so the method doubles as
        a decorator body.

        Raises:
            DuplicateEventTypeError: If the tag already maps to another class
        """
        tag = event_type or event_type_of(event_class)
        with self._lock:
            known = self._classes.setdefault(tag, event_class)
        if known is not event_class:
            raise DuplicateEventTypeError(tag, known, event_class)
        logger.debug(
            "Event tag %s -> %s",
            tag,
            event_class.__qualname__,
            extra={"event_type": tag, "event_class": event_class.__name__},
        )
        return event_class

    def get(self, event_type: str) -> type[DomainEvent]:
        """
        Raises:
            EventTypeNotFoundError: If nothing is registered under the tag
        """
        with self._lock:
            try:
                return self._classes[event_type]
            except KeyError:
                raise EventTypeNotFoundError(event_type, list(self._classes)) from None

    def get_or_none(self, event_type: str) -> type[DomainEvent] | None:
        with self._lock:
            return self._classes.get(event_type)

    def deserialize(self, data: dict) -> DomainEvent:
        """
        Validate a stored event dict into the class its tag names.

        Raises:
            EventTypeNotFoundError: For an unregistered tag
            ValidationError: If the payload does not fit the class
        """
        return self.get(data.get("event_type", "")).model_validate(data)

    def contains(self, event_type: str) -> bool:
        with self._lock:
            return event_type in self._classes

    def list_types(self) -> list[str]:
        with self._lock:
            return sorted(self._classes)

    def clear(self) -> None:
        with self._lock:
            self._classes.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._classes)

    def __bool__(self) -> bool:
        return True

    def __contains__(self, event_type: object) -> bool:
        return isinstance(event_type, str) and self.contains(event_type)

    def __iter__(self) -> Iterator[str]:
        return iter(self.list_types())


default_registry = EventRegistry()


@overload
def register_event(event_class: type[TEvent]) -> type[TEvent]: ...


@overload
def register_event(
    event_class: None = None,
    *,
    event_type: str | None = None,
    registry: EventRegistry | None = None,
) -> Callable[[type[TEvent]], type[TEvent]]: ...


def register_event(
    event_class: type[TEvent] | None = None,
    *,
    event_type: str | None = None,
    registry: EventRegistry | None = None,
) -> type[TEvent] | Callable[[type[TEvent]], type[TEvent]]:
    """Class decorator; works bare or called with ``event_type``/``registry``."""
    target = default_registry if registry is None else registry

    if event_class is None:
        return lambda cls: target.register(cls, event_type)
    return target.register(event_class, event_type)


def get_event_class(event_type: str) -> type[DomainEvent]:
    return default_registry.get(event_type)


__all__ = [
    "EventRegistry",
    "EventTypeNotFoundError",
    "DuplicateEventTypeError",
    "default_registry",
    "event_type_of",
    "register_event",
    "get_event_class",
]
