"""Infrastructure configuration module - public API.

Centralized configuration for the notification engine using Pydantic
BaseSettings with concern-based organization.

Exports:
    Settings: Main settings class
    NotificationSettings: Fan-out engine settings
    RetrySettings: Bounded retry settings

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    timeout = settings.notifications.realtime_timeout_seconds
    max_attempts = settings.retry.max_attempts
    ```
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.infrastructure.notifications import (
    NotificationSettings,
)
from infrastructure.configuration.infrastructure.retry import RetrySettings

__all__ = ["Settings", "NotificationSettings", "RetrySettings"]
