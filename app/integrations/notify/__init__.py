"""GC Notify integration for SMS and email deliveries."""

from .client import (
    NotifyClient,
    create_jwt_token,
    epoch_seconds,
)

__all__ = [
    "NotifyClient",
    "create_jwt_token",
    "epoch_seconds",
]
