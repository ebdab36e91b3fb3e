"""
Periodic domain expiration check.

Every interval the monitor runs the renewal workflow for active domains that
fall inside the renewal window, and expires active domains whose expiration
date has passed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from ispflow.background import BackgroundLoop
from ispflow.config import ExpirationMonitorConfig
from ispflow.persistence.database import Database
from ispflow.persistence.repositories import DomainRepository
from ispflow.workflows.base import Clock, utc_now
from ispflow.workflows.renewal import DomainRenewalWorkflow

logger = logging.getLogger(__name__)


@dataclass
class ExpirationReport:
    checked: int = 0
    renewed: int = 0
    reminded: int = 0
    expired: int = 0
    failed: list[int] = field(default_factory=list)


class DomainExpirationMonitor(BackgroundLoop):
    """
    Background service driving renewals and expirations.

    Example:
        >>> monitor = DomainExpirationMonitor(database, renewal_workflow)
        >>> report = await monitor.run_once()
        >>> monitor.start()
    """

    name = "domain-expiration-monitor"

    def __init__(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        config: ExpirationMonitorConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or ExpirationMonitorConfig()
        super().__init__(self._config.interval)
        self._domains = DomainRepository(database.engine)
        self._renewal = renewal
        self._clock = clock or utc_now
        self._last_report: ExpirationReport | None = None

    @property
    def last_report(self) -> ExpirationReport | None:
        return self._last_report

    async def run_cycle(self) -> bool:
        await self.run_once()
        return False

    async def run_once(self) -> ExpirationReport:
        """Check every active domain once and return what was done."""
        now = self._clock()
        report = ExpirationReport()
        window = timedelta(days=self._renewal.policy.window_days + 1)

        for domain in await self._domains.list_expiring(before=now + window, after=now):
            if not self._renewal.is_due(domain):
                continue
            report.checked += 1
            result = await self._renewal.execute(domain.id)
            if not result.success:
                report.failed.append(domain.id)
            elif result.details.get("renewed"):
                report.renewed += 1
            else:
                report.reminded += 1

        for domain in await self._domains.list_expired(now):
            report.checked += 1
            result = await self._renewal.expire(domain.id)
            if not result.success:
                report.failed.append(domain.id)
            elif result.details.get("expired"):
                report.expired += 1

        self._last_report = report
        logger.info(
            "Expiration check: %d checked, %d renewed, %d reminded, %d expired, %d failed",
            report.checked,
            report.renewed,
            report.reminded,
            report.expired,
            len(report.failed),
            extra={"service": self.name, "failed_domain_ids": report.failed},
        )
        return report


__all__ = ["DomainExpirationMonitor", "ExpirationReport"]
