"""Notification channel implementations."""

from infrastructure.notifications.channels.base import (
    ChannelCapabilities,
    GatewayChannel,
    NotificationChannel,
)
from infrastructure.notifications.channels.email import EmailChannel
from infrastructure.notifications.channels.realtime import (
    InMemoryRealtimePublisher,
    RealtimeChannel,
    RealtimePublisher,
)
from infrastructure.notifications.channels.sms import SMSChannel

__all__ = [
    "ChannelCapabilities",
    "GatewayChannel",
    "NotificationChannel",
    "EmailChannel",
    "InMemoryRealtimePublisher",
    "RealtimeChannel",
    "RealtimePublisher",
    "SMSChannel",
]
