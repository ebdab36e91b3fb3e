"""
Backoff calculation for the background loops.

The dispatcher, expiration monitor and rate sweeper back off with this when
a cycle fails on infrastructure (database unreachable and the like).
"""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffConfig:
    """
    Exponential backoff settings.

    Attributes:
        initial_delay: Delay in seconds after the first failure
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor per consecutive failure
        jitter: Fraction of delay added or removed at random (0-1)
    """

    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be positive, got {self.initial_delay}.")

        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})."
            )

        if self.exponential_base <= 1.0:
            raise ValueError(f"exponential_base must be > 1.0, got {self.exponential_base}.")

        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}.")


def calculate_backoff(attempt: int, config: BackoffConfig) -> float:
    """
    Calculate backoff delay with exponential growth and jitter.

    Args:
        attempt: Number of consecutive failures so far (0-based)
        config: Backoff configuration

    Example:
        >>> config = BackoffConfig(initial_delay=1.0, max_delay=60.0, jitter=0.0)
        >>> calculate_backoff(3, config)
        8.0
    """
    # Exponent capped so long failure streaks can't overflow the float
    growth = config.exponential_base ** min(attempt, 64)
    delay = min(config.initial_delay * growth, config.max_delay)

    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)  # nosec B311 - not crypto

    return max(0.0, delay)


__all__ = ["BackoffConfig", "calculate_backoff"]
