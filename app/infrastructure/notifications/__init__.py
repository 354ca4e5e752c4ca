"""Notification fan-out engine.

Takes a domain event and delivers it to each recipient across the channels
they enabled (real-time push, email, SMS) with:
- Deduplication of repeated events inside a dedupe window
- One persisted record per recipient with read state
- Preference resolution (opt-outs, quiet hours, critical bypass)
- Real-time first when the recipient is connected
- Per channel delivery status that only moves forward
- Reconciliation of deliveries left pending

Usage:
    from infrastructure.notifications import NotificationService
    from infrastructure.services import get_settings

    service = NotificationService(get_settings())
    result = service.send(
        {
            "category": "bid_outcome",
            "recipients": ["user-1"],
            "payload": {"auction_id": "a-9", "won": True},
            "source_event_id": "auction-a-9-closed",
        }
    )

    for recipient in result.recipients:
        for channel, outcome in recipient.per_channel.items():
            logger.info(
                "channel_outcome", channel=channel, status=outcome.status.value
            )
"""

# Models
from infrastructure.notifications.models import (
    EMAIL_CHANNEL,
    REALTIME_CHANNEL,
    SMS_CHANNEL,
    CostTier,
    DeliveryConstraints,
    DeliveryOutcome,
    DeliveryStatus,
    DispatchResult,
    NotificationPage,
    NotificationPriority,
    NotificationRecord,
    NotificationRequest,
    OutboundMessage,
    PreferenceSet,
    QuietHours,
    Recipient,
    RecipientDispatch,
    ResolvedPreference,
)

# Errors
from infrastructure.notifications.errors import (
    ChannelDeliveryFailure,
    NotificationError,
    NotificationValidationError,
    RecordNotFound,
    StoreUnavailable,
)

# Categories
from infrastructure.notifications.categories import (
    DEFAULT_CATEGORIES,
    CategoryPolicy,
    CategoryRegistry,
)

# Engine components
from infrastructure.notifications.directory import (
    InMemoryRecipientDirectory,
    RecipientDirectory,
)
from infrastructure.notifications.preferences import (
    InMemoryPreferenceRepository,
    PreferenceRepository,
    PreferenceResolver,
)
from infrastructure.notifications.preference_service import PreferenceService
from infrastructure.notifications.presence import PresenceTracker
from infrastructure.notifications.store import (
    InMemoryNotificationStore,
    NotificationStore,
)

# Channel interface and implementations
from infrastructure.notifications.channels import (
    ChannelCapabilities,
    EmailChannel,
    GatewayChannel,
    InMemoryRealtimePublisher,
    NotificationChannel,
    RealtimeChannel,
    RealtimePublisher,
    SMSChannel,
)

# Dispatcher, reconciliation and service
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.reconciliation import ReconciliationWorker
from infrastructure.notifications.service import NotificationService

__all__ = [
    # Models
    "EMAIL_CHANNEL",
    "REALTIME_CHANNEL",
    "SMS_CHANNEL",
    "CostTier",
    "DeliveryConstraints",
    "DeliveryOutcome",
    "DeliveryStatus",
    "DispatchResult",
    "NotificationPage",
    "NotificationPriority",
    "NotificationRecord",
    "NotificationRequest",
    "OutboundMessage",
    "PreferenceSet",
    "QuietHours",
    "Recipient",
    "RecipientDispatch",
    "ResolvedPreference",
    # Errors
    "ChannelDeliveryFailure",
    "NotificationError",
    "NotificationValidationError",
    "RecordNotFound",
    "StoreUnavailable",
    # Categories
    "DEFAULT_CATEGORIES",
    "CategoryPolicy",
    "CategoryRegistry",
    # Components
    "InMemoryRecipientDirectory",
    "RecipientDirectory",
    "InMemoryPreferenceRepository",
    "PreferenceRepository",
    "PreferenceResolver",
    "PreferenceService",
    "PresenceTracker",
    "InMemoryNotificationStore",
    "NotificationStore",
    # Channels
    "ChannelCapabilities",
    "EmailChannel",
    "GatewayChannel",
    "InMemoryRealtimePublisher",
    "NotificationChannel",
    "RealtimeChannel",
    "RealtimePublisher",
    "SMSChannel",
    # Engine
    "NotificationDispatcher",
    "ReconciliationWorker",
    "NotificationService",
]
