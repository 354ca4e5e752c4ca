"""Resilience patterns and implementations.

This module contains resilience-related infrastructure components such as
circuit breakers and bounded retry logic.
"""

from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
)
from infrastructure.resilience.retry import RetryPolicy, retry_call, retry_operation

__all__ = [
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    # Retry
    "RetryPolicy",
    "retry_call",
    "retry_operation",
]
