"""
Base class for domain events.

Events are immutable records of lifecycle facts (an order was created, a
domain was renewed). They are written to the outbox in the same transaction
as the aggregate change they describe and relayed asynchronously to handlers.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, ClassVar, Self
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


def new_correlation_id() -> str:
    """Return a fresh correlation id for a new business transaction."""
    return str(uuid4())


class DomainEvent(BaseModel):
    """
    Base class for all domain events with automatic event_type derivation.

    The envelope fields live here; the type-specific payload is whatever
    fields a subclass declares. ``event_type`` defaults to the class name.

    Attributes:
        event_id: Unique identifier for this event instance, never reused
        event_type: Schema tag of the event (auto-derived from class name)
        event_version: Schema version for this event type
        aggregate_id: ID of the aggregate the event concerns
        aggregate_type: Type of aggregate ('Domain', 'Order', 'Invoice')
        occurred_at: Logical occurrence time (UTC), not persistence time
        correlation_id: Groups all events of one business transaction
        causation_id: ID of the event that caused this event
        metadata: Additional event metadata dictionary

    Example:
        >>> class OrderActivated(DomainEvent):
        ...     aggregate_type: str = "Order"
        ...     order_number: str
        ...
        >>> event = OrderActivated(aggregate_id=42, order_number="ORD-2026-00042")
        >>> assert event.event_type == "OrderActivated"
        >>> event.payload()
        {'order_number': 'ORD-2026-00042'}
    """

    model_config = ConfigDict(frozen=True)

    suppress_event_type_warning: ClassVar[bool] = False

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier",
    )
    event_type: str = Field(
        default="",
        description="Type of event (auto-derived from class name if not set)",
    )
    event_version: int = Field(
        default=1,
        ge=1,
        description="Event schema version",
    )
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When event occurred (UTC)",
    )

    aggregate_id: int = Field(
        ...,
        description="ID of the aggregate this event belongs to",
    )
    aggregate_type: str = Field(
        ...,
        description="Type of aggregate (e.g., 'Domain')",
    )

    correlation_id: str = Field(
        default_factory=new_correlation_id,
        min_length=1,
        description="ID linking all events of one business transaction",
    )
    causation_id: UUID | None = Field(
        default=None,
        description="ID of the event that caused this event",
    )

    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event metadata",
    )

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)

        explicit_type = cls.model_fields["event_type"].default
        if (
            isinstance(explicit_type, str)
            and explicit_type
            and explicit_type != cls.__name__
            and not cls.suppress_event_type_warning
        ):
            logger.warning(
                "Event class %s has event_type='%s' which differs from class name. "
                "Set suppress_event_type_warning=True to silence this warning.",
                cls.__name__,
                explicit_type,
            )

    @model_validator(mode="before")
    @classmethod
    def _ensure_event_type(cls, data: Any) -> Any:
        """Populate event_type from the field default or, failing that, the class name."""
        if isinstance(data, dict) and not data.get("event_type"):
            field_info = cls.model_fields.get("event_type")
            field_default = field_info.default if field_info else ""
            data = dict(data)
            data["event_type"] = field_default or cls.__name__
        return data

    def __str__(self) -> str:
        return (
            f"{self.event_type}(event_id={self.event_id}, "
            f"{self.aggregate_type}={self.aggregate_id}, "
            f"correlation_id={self.correlation_id})"
        )

    def payload(self) -> dict[str, Any]:
        """Return only the type-specific fields, JSON-compatible."""
        return self.model_dump(
            mode="json",
            exclude=set(DomainEvent.model_fields),
        )

    def with_causation(self, causing_event: DomainEvent) -> Self:
        """
        Create a copy of this event caused by another event.

        The copy joins the causing event's business transaction: its
        correlation id is copied and its event id becomes the causation id.
        """
        return self.model_copy(
            update={
                "causation_id": causing_event.event_id,
                "correlation_id": causing_event.correlation_id,
            }
        )

    def with_correlation(self, correlation_id: str) -> Self:
        """Create a copy of this event in the given business transaction."""
        return self.model_copy(update={"correlation_id": correlation_id})

    def with_metadata(self, **kwargs: Any) -> Self:
        """Create a copy of this event with additional metadata."""
        return self.model_copy(update={"metadata": {**self.metadata, **kwargs}})

    def to_dict(self) -> dict[str, Any]:
        """Convert event to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create event from dictionary.

        Raises:
            ValidationError: If data doesn't match event schema
        """
        return cls.model_validate(data)

    def is_correlated_with(self, event: DomainEvent) -> bool:
        """True if both events belong to the same business transaction."""
        return self.correlation_id == event.correlation_id
