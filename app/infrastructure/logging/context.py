"""Request context binding for structured logging.

Binds dispatch-scoped context (correlation id, category) to every log
entry emitted while a notification request is being handled.

Usage:
    from infrastructure.logging import bind_request_context

    with bind_request_context(correlation_id="evt-123", category="new_bid"):
        logger.info("dispatching")
"""

import uuid
from contextlib import contextmanager
from typing import Optional, Any, Generator
import structlog


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    **extra_context: Any,
) -> Generator[str, None, None]:
    """Bind request-scoped context to all logs within the context manager.

    Args:
        correlation_id: Unique request identifier. Auto-generated if not provided.
        **extra_context: Additional key-value pairs to include in logs.
            ``None`` values are dropped.

    Yields:
        The correlation id bound for the block.
    """
    context: dict[str, Any] = {
        key: value for key, value in extra_context.items() if value is not None
    }
    context["correlation_id"] = correlation_id or str(uuid.uuid4())

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield context["correlation_id"]
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context."""
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in the current logging context."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_request_context() -> None:
    """Clear all request-scoped context from the logging context."""
    structlog.contextvars.clear_contextvars()
