"""Explicit outcome of a workflow entry point."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """
    Failure taxonomy for workflow results.

    VALIDATION: illegal transition, bad input or missing configuration;
        nothing changed.
    NOT_FOUND: a referenced aggregate does not exist; nothing changed.
    DEPENDENCY: an external collaborator failed or timed out; a compensating
        change may have been recorded.
    INFRASTRUCTURE: the database, outbox or lock failed; the unit of work
        was rolled back and the operation may be retried.
    """

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    DEPENDENCY = "dependency"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True)
class WorkflowResult:
    """
    What a workflow entry point returns instead of raising.

    Attributes:
        success: Whether the operation reached its intended outcome
        correlation_id: Correlation id of every event the operation appended
        message: Human-readable summary
        aggregate_id: The aggregate the operation acted on, when known
        error_kind: Set on failure
        details: Extra identifiers (invoice id, transaction id, ...)
    """

    success: bool
    correlation_id: str
    message: str = ""
    aggregate_id: int | None = None
    error_kind: ErrorKind | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(
        cls,
        correlation_id: str,
        message: str = "",
        aggregate_id: int | None = None,
        **details: Any,
    ) -> WorkflowResult:
        return cls(
            success=True,
            correlation_id=correlation_id,
            message=message,
            aggregate_id=aggregate_id,
            details=details,
        )

    @classmethod
    def failed(
        cls,
        correlation_id: str,
        error_kind: ErrorKind,
        message: str,
        aggregate_id: int | None = None,
        **details: Any,
    ) -> WorkflowResult:
        return cls(
            success=False,
            correlation_id=correlation_id,
            message=message,
            aggregate_id=aggregate_id,
            error_kind=error_kind,
            details=details,
        )

    @property
    def retryable(self) -> bool:
        """True when running the same operation again may succeed."""
        return self.error_kind is ErrorKind.INFRASTRUCTURE


__all__ = ["ErrorKind", "WorkflowResult"]
