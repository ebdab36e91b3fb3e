"""
Configuration for the lifecycle core.

Each component takes its own frozen config dataclass; ``Settings`` groups
them and can be loaded from ``ISPFLOW_*`` environment variables.

Example:
    >>> settings = Settings.from_env()
    >>> settings.dispatcher.batch_size
    100
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ispflow.exceptions import ConfigurationError
from ispflow.retry import BackoffConfig

ENV_PREFIX = "ISPFLOW_"


@dataclass(frozen=True)
class DispatcherConfig:
    """
    Configuration for the outbox dispatcher.

    Attributes:
        batch_size: Maximum records fetched per cycle
        poll_interval: Seconds between cycles when idle
        max_concurrency: Aggregate groups dispatched in parallel
        handler_timeout: Seconds each handler invocation may run. Under
            ``Settings`` it must exceed the workflow lock and call timeouts combined.
        max_retries: Retry count at which a record is reported as poisoned.
            It stays pending and keeps being retried.
        error_backoff: Backoff applied when a cycle fails on the store
    """

    batch_size: int = 100
    poll_interval: float = 10.0
    max_concurrency: int = 10
    handler_timeout: float = 90.0
    max_retries: int = 5
    error_backoff: BackoffConfig = field(
        default_factory=lambda: BackoffConfig(initial_delay=1.0, max_delay=60.0)
    )

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.handler_timeout <= 0:
            raise ValueError(f"handler_timeout must be positive, got {self.handler_timeout}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")


@dataclass(frozen=True)
class RenewalPolicy:
    """
    Attributes:
        window_days: A domain is due when this many days or fewer remain
        period_years: Years added to the expiration date per renewal
        default_renewal_price: Used when a domain has no renewal price
    """

    window_days: int = 30
    period_years: int = 1
    default_renewal_price: Decimal = Decimal("12.99")

    def __post_init__(self) -> None:
        if self.window_days < 0:
            raise ValueError(f"window_days must be >= 0, got {self.window_days}")
        if self.period_years < 1:
            raise ValueError(f"period_years must be >= 1, got {self.period_years}")
        if self.default_renewal_price < 0:
            raise ValueError("default_renewal_price must not be negative")


@dataclass(frozen=True)
class WorkflowConfig:
    """
    Attributes:
        external_call_timeout: Seconds any registrar/payment/provisioner call may take
        lock_timeout: Seconds to wait for the per-aggregate lock
        check_availability: Ask the registrar for availability before ordering
        strict_service_types: Fail provisioning for unknown service types
            instead of logging and activating
        default_domain_price: Yearly price when the registrar quotes none
        invoice_due_days: Days from issue until an order invoice is due
        currency_code: Invoice currency
    """

    external_call_timeout: float = 30.0
    lock_timeout: float = 30.0
    check_availability: bool = False
    strict_service_types: bool = False
    default_domain_price: Decimal = Decimal("12.99")
    invoice_due_days: int = 30
    currency_code: str = "EUR"

    def __post_init__(self) -> None:
        if self.external_call_timeout <= 0:
            raise ValueError(
                f"external_call_timeout must be positive, got {self.external_call_timeout}"
            )
        if self.lock_timeout <= 0:
            raise ValueError(f"lock_timeout must be positive, got {self.lock_timeout}")
        if self.invoice_due_days < 0:
            raise ValueError(f"invoice_due_days must be >= 0, got {self.invoice_due_days}")
        if len(self.currency_code) != 3:
            raise ValueError(f"currency_code must be a 3-letter code, got {self.currency_code!r}")


@dataclass(frozen=True)
class ExpirationMonitorConfig:
    interval: float = 6 * 60 * 60
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")


@dataclass(frozen=True)
class RateSweepConfig:
    interval: float = 60 * 60
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")


class Settings(BaseSettings):
    """
    Top-level settings, read from ``ISPFLOW_*`` environment variables.

    Nested configs use ``__`` as the delimiter, so
    ``ISPFLOW_DISPATCHER__BATCH_SIZE=25`` sets ``settings.dispatcher.batch_size``.

    Attributes:
        database_url: SQLAlchemy async URL (postgresql+asyncpg://, sqlite+aiosqlite://)
        provider_mode: Which collaborator implementations to build ("sandbox")
        enable_tracing: Create OpenTelemetry spans when OTEL is installed
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    database_url: str = "sqlite+aiosqlite:///ispflow.db"
    provider_mode: str = "sandbox"
    enable_tracing: bool = True
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    renewal: RenewalPolicy = Field(default_factory=RenewalPolicy)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    expiration: ExpirationMonitorConfig = Field(default_factory=ExpirationMonitorConfig)
    rate_sweep: RateSweepConfig = Field(default_factory=RateSweepConfig)

    @model_validator(mode="after")
    def _handler_outlives_workflow_calls(self) -> Settings:
        # A handler may wait for the aggregate lock and then make an external
        # call; the dispatcher must not give up on it first.
        budget = self.workflow.external_call_timeout + self.workflow.lock_timeout
        if self.dispatcher.handler_timeout <= budget:
            raise ValueError(
                f"dispatcher.handler_timeout ({self.dispatcher.handler_timeout}) must be "
                f"greater than workflow.external_call_timeout + workflow.lock_timeout ({budget})"
            )
        return self

    @classmethod
    def from_env(cls) -> Settings:
        """
        Load settings from the environment; unset variables keep defaults.

        Raises:
            ConfigurationError: If a variable is set to an invalid value
        """
        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {ENV_PREFIX}* settings: {e}") from e


__all__ = [
    "DispatcherConfig",
    "RenewalPolicy",
    "WorkflowConfig",
    "ExpirationMonitorConfig",
    "RateSweepConfig",
    "Settings",
]
