"""Unit tests for RetryPolicy."""

import pytest

from infrastructure.configuration import RetrySettings
from infrastructure.resilience.retry import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy dataclass."""

    def test_defaults(self):
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.base_delay_seconds == 0.5
        assert policy.max_delay_seconds == 8.0

    def test_exponential_backoff(self):
        policy = RetryPolicy(base_delay_seconds=1, max_delay_seconds=5)

        assert [policy.delay_for(n) for n in range(1, 6)] == [1, 2, 4, 5, 5]

    def test_delay_before_first_attempt_is_zero(self):
        assert RetryPolicy().delay_for(0) == 0.0

    def test_validates_max_attempts(self):
        with pytest.raises(ValueError, match="max_attempts must be at least 1"):
            RetryPolicy(max_attempts=0)

    def test_validates_base_delay(self):
        with pytest.raises(ValueError, match="must not be negative"):
            RetryPolicy(base_delay_seconds=-1)

    def test_validates_max_delay(self):
        with pytest.raises(
            ValueError, match="max_delay_seconds must be >= base_delay_seconds"
        ):
            RetryPolicy(base_delay_seconds=10, max_delay_seconds=5)

    def test_from_settings(self):
        settings = RetrySettings(
            RETRY_MAX_ATTEMPTS=5,
            RETRY_BASE_DELAY_SECONDS=2,
            RETRY_MAX_DELAY_SECONDS=30,
        )

        assert RetryPolicy.from_settings(settings) == RetryPolicy(5, 2.0, 30.0)
