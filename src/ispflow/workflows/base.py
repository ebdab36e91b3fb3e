"""
Shared plumbing for workflow orchestrators.

Every entry point runs through ``Workflow._run``: it takes the in-process
lock for the aggregate, opens a tracing span and turns any exception that
escapes the body into a failed ``WorkflowResult``. Expected failures are
returned by the body explicitly; ``_run`` only maps what is left over.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from ispflow.config import WorkflowConfig
from ispflow.exceptions import (
    AggregateNotFoundError,
    DependencyError,
    InvalidTransitionError,
    LockAcquisitionError,
    OutboxError,
)
from ispflow.locks import KeyedLockManager
from ispflow.observability import Tracer, create_tracer
from ispflow.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_CORRELATION_ID,
    ATTR_WORKFLOW_NAME,
    ATTR_WORKFLOW_SUCCESS,
)
from ispflow.persistence.database import Database
from ispflow.providers import Providers
from ispflow.workflows.result import ErrorKind, WorkflowResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def add_years(moment: datetime, years: int) -> datetime:
    """Shift by calendar years; 29 February lands on 28 February in common years."""
    year = moment.year + years
    day = min(moment.day, calendar.monthrange(year, moment.month)[1])
    return moment.replace(year=year, day=day)


class Workflow:
    """
    Base class for orchestrators over one aggregate type.

    Args:
        database: Source of units of work
        providers: External collaborators
        config: Timeouts and workflow switches
        locks: Lock manager shared by all workflows of a process, so
            different workflows touching one aggregate also serialize
        clock: Returns the current UTC time
    """

    name = "Workflow"

    def __init__(
        self,
        database: Database,
        providers: Providers,
        *,
        config: WorkflowConfig | None = None,
        locks: KeyedLockManager | None = None,
        clock: Clock | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._db = database
        self._providers = providers
        self._config = config or WorkflowConfig()
        self._locks = locks if locks is not None else KeyedLockManager(enable_tracing=enable_tracing)
        self._clock = clock or utc_now
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    @property
    def locks(self) -> KeyedLockManager:
        return self._locks

    async def _run(
        self,
        operation: str,
        lock_key: str,
        correlation_id: str,
        aggregate_id: int | None,
        body: Callable[[], Awaitable[WorkflowResult]],
    ) -> WorkflowResult:
        with self._tracer.span(
            f"ispflow.workflow.{operation}",
            {
                ATTR_WORKFLOW_NAME: self.name,
                ATTR_AGGREGATE_ID: aggregate_id,
                ATTR_CORRELATION_ID: correlation_id,
            },
        ) as span:
            result = await self._guarded(operation, lock_key, correlation_id, aggregate_id, body)
            if span is not None:
                span.set_attribute(ATTR_WORKFLOW_SUCCESS, result.success)

        log = logger.info if result.success else logger.warning
        log(
            "%s.%s %s: %s",
            self.name,
            operation,
            "succeeded" if result.success else "failed",
            result.message,
            extra={
                "workflow": self.name,
                "operation": operation,
                "aggregate_id": result.aggregate_id,
                "correlation_id": correlation_id,
                "error_kind": result.error_kind.value if result.error_kind else None,
            },
        )
        return result

    async def _guarded(
        self,
        operation: str,
        lock_key: str,
        correlation_id: str,
        aggregate_id: int | None,
        body: Callable[[], Awaitable[WorkflowResult]],
    ) -> WorkflowResult:
        try:
            async with self._locks.acquire(lock_key, timeout=self._config.lock_timeout):
                return await body()
        except AggregateNotFoundError as e:
            return WorkflowResult.failed(correlation_id, ErrorKind.NOT_FOUND, str(e), aggregate_id)
        except (InvalidTransitionError, ValueError) as e:
            return WorkflowResult.failed(correlation_id, ErrorKind.VALIDATION, str(e), aggregate_id)
        except DependencyError as e:
            return WorkflowResult.failed(correlation_id, ErrorKind.DEPENDENCY, str(e), aggregate_id)
        except (LockAcquisitionError, OutboxError, SQLAlchemyError) as e:
            logger.error(
                "%s.%s aborted: %s",
                self.name,
                operation,
                e,
                exc_info=True,
                extra={"workflow": self.name, "correlation_id": correlation_id},
            )
            return WorkflowResult.failed(
                correlation_id, ErrorKind.INFRASTRUCTURE, str(e), aggregate_id
            )
        except Exception as e:
            logger.exception(
                "Unexpected error in %s.%s",
                self.name,
                operation,
                extra={"workflow": self.name, "correlation_id": correlation_id},
            )
            return WorkflowResult.failed(
                correlation_id,
                ErrorKind.INFRASTRUCTURE,
                f"{type(e).__name__}: {e}",
                aggregate_id,
            )


__all__ = ["Clock", "Workflow", "add_years", "utc_now"]
