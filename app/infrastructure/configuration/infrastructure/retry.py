"""Retry infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class RetrySettings(InfrastructureSettings):
    """Bounded retry configuration.

    Used by retryable channel adapters (SMS, email) for their own delivery
    retries, and by the service facade when a store write fails.

    Environment Variables:
        RETRY_MAX_ATTEMPTS: Maximum attempts including the first (default: 3)
        RETRY_BASE_DELAY_SECONDS: Base exponential backoff delay (default: 0.5s)
        RETRY_MAX_DELAY_SECONDS: Maximum backoff delay (default: 8s)

    Exponential Backoff:
        Delay calculation: min(base_delay * (2 ^ (attempt - 1)), max_delay)

        Example with defaults (base=0.5s, max=8s):
            After attempt 1: 0.5s
            After attempt 2: 1s
    """

    max_attempts: int = Field(
        default=3,
        alias="RETRY_MAX_ATTEMPTS",
        description="Maximum attempts per delivery, first attempt included",
    )
    base_delay_seconds: float = Field(
        default=0.5,
        alias="RETRY_BASE_DELAY_SECONDS",
        description="Base delay for exponential backoff (seconds)",
    )
    max_delay_seconds: float = Field(
        default=8.0,
        alias="RETRY_MAX_DELAY_SECONDS",
        description="Maximum delay for exponential backoff (seconds)",
    )
