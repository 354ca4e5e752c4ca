"""Bounded retry helpers."""

from infrastructure.resilience.retry.executor import retry_call, retry_operation
from infrastructure.resilience.retry.policy import RetryPolicy

__all__ = ["RetryPolicy", "retry_call", "retry_operation"]
