"""Background sweep that deactivates expired exchange rates."""

from __future__ import annotations

from ispflow.background import BackgroundLoop
from ispflow.config import RateSweepConfig
from ispflow.currency.service import CurrencyService


class RateExpirySweeper(BackgroundLoop):
    name = "rate-expiry-sweeper"

    def __init__(self, service: CurrencyService, config: RateSweepConfig | None = None) -> None:
        self._config = config or RateSweepConfig()
        super().__init__(self._config.interval)
        self._service = service
        self.deactivated_total = 0

    async def run_cycle(self) -> bool:
        self.deactivated_total += await self._service.deactivate_expired_rates()
        return False


__all__ = ["RateExpirySweeper"]
