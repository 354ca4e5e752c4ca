"""Infrastructure modules for the notification fan-out service.

Centralized infrastructure components:
- configuration: Settings management (Settings, NotificationSettings, RetrySettings)
- logging: Structured logging (get_module_logger, logger)
- operations: Operation results and error classification
- resilience: Circuit breakers and bounded retry
- idempotency: Dedupe reservations for notification events
- notifications: Dispatcher, store, preferences, presence and channels
- services: Provider functions (get_settings, get_notification_service)
"""

# Observability
from infrastructure.logging import get_module_logger, logger

# Operations
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    # Observability
    "get_module_logger",
    "logger",
    # Operations
    "OperationResult",
    "OperationStatus",
]
