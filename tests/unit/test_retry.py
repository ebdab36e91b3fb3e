"""Unit tests for backoff calculation."""

import pytest

from ispflow.retry import BackoffConfig, calculate_backoff


class TestBackoffConfig:
    def test_defaults(self) -> None:
        config = BackoffConfig()

        assert config.initial_delay == 1.0
        assert config.max_delay == 60.0
        assert config.exponential_base == 2.0
        assert config.jitter == 0.1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_delay": 0},
            {"initial_delay": 10.0, "max_delay": 5.0},
            {"exponential_base": 1.0},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            BackoffConfig(**kwargs)


class TestCalculateBackoff:
    def test_exponential_growth_without_jitter(self) -> None:
        config = BackoffConfig(initial_delay=1.0, max_delay=60.0, jitter=0.0)

        assert [calculate_backoff(n, config) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self) -> None:
        config = BackoffConfig(initial_delay=1.0, max_delay=10.0, jitter=0.0)

        assert calculate_backoff(20, config) == 10.0

    def test_huge_attempt_does_not_overflow(self) -> None:
        config = BackoffConfig(jitter=0.0)

        assert calculate_backoff(10_000, config) == config.max_delay

    def test_jitter_stays_in_range(self) -> None:
        config = BackoffConfig(initial_delay=4.0, max_delay=60.0, jitter=0.5)

        for _ in range(50):
            delay = calculate_backoff(0, config)
            assert 2.0 <= delay <= 6.0
