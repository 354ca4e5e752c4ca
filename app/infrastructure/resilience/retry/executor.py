"""Helpers that run a callable under a RetryPolicy."""

import time
from typing import Callable, Tuple, Type, TypeVar

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from infrastructure.resilience.retry.policy import RetryPolicy

logger = get_module_logger()

T = TypeVar("T")


def retry_operation(
    func: Callable[[], OperationResult],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "operation",
) -> OperationResult:
    """Call ``func`` until it succeeds, fails permanently or attempts run out.

    Only results flagged as retryable (transient errors) are retried. The
    last result is returned unchanged.
    """
    attempt = 1
    while True:
        result = func()
        if result.is_success or not result.is_retryable:
            return result
        if attempt >= policy.max_attempts:
            logger.warning(
                "retry_attempts_exhausted",
                operation=operation,
                attempts=attempt,
                error_code=result.error_code,
            )
            return result

        delay = result.retry_after if result.retry_after else policy.delay_for(attempt)
        delay = min(float(delay), policy.max_delay_seconds)
        logger.info(
            "retrying_operation",
            operation=operation,
            attempt=attempt,
            delay_seconds=delay,
            error_code=result.error_code,
        )
        sleep(delay)
        attempt += 1


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "operation",
) -> T:
    """Call ``func`` retrying on the given exception types.

    The final exception propagates once attempts are exhausted.
    """
    attempt = 1
    while True:
        try:
            return func()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                logger.error(
                    "retry_attempts_exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=str(e),
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "retrying_operation",
                operation=operation,
                attempt=attempt,
                delay_seconds=delay,
                error=str(e),
            )
            sleep(delay)
            attempt += 1
