"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for core infrastructure services.
"""

from functools import lru_cache
from typing import TYPE_CHECKING

from infrastructure.configuration import Settings

if TYPE_CHECKING:
    from infrastructure.notifications import NotificationService


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    This is the single source of truth for settings across the entire application.
    The @lru_cache decorator ensures only ONE instance is created per process,
    even if called from multiple packages.

    Infrastructure packages should use this directly to ensure singleton consistency:
        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_notification_service() -> "NotificationService":
    """
    Get application-scoped notification service singleton.

    The service owns the dispatcher worker pools, so one instance per process
    is shared by every producer of notification requests.

    Returns:
        NotificationService: Cached service built from application settings.

    Usage:
        service = get_notification_service()
        result = service.send(
            {"category": "payment", "recipients": ["user-1"], "payload": {}}
        )
    """
    # Import here so settings can be loaded without the notification engine
    from infrastructure.notifications import NotificationService

    return NotificationService(settings=get_settings())
