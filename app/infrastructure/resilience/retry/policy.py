"""Bounded retry policy.

This module defines the exponential backoff policy shared by the delivery
channels and the notification service's store-retry wrapper.
"""

from dataclasses import dataclass

from infrastructure.configuration.infrastructure.retry import RetrySettings


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a cap.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay_seconds: Delay before the second attempt
        max_delay_seconds: Upper bound on any single delay

    Example:
        policy = RetryPolicy(max_attempts=3, base_delay_seconds=0.5)
        policy.delay_for(1)  # 0.5
        policy.delay_for(2)  # 1.0
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must not be negative")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        if attempt < 1:
            return 0.0
        return min(
            self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds
        )

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_seconds=settings.base_delay_seconds,
            max_delay_seconds=settings.max_delay_seconds,
        )
