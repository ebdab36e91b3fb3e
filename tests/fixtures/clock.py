"""Controllable clock for workflow tests."""

from datetime import UTC, datetime, timedelta


class FixedClock:
    """
    Callable returning a fixed UTC instant until advanced.

    Example:
        >>> clock = FixedClock(datetime(2026, 3, 1, tzinfo=UTC))
        >>> clock.advance(days=10)
    """

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now
