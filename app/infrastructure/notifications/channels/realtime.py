"""Real-time (in-app push) channel.

Publishes notification events on the recipient's topic. Delivery is only
attempted while the presence tracker reports the recipient connected.
"""

import threading
from typing import Any, Callable, Dict, List, Protocol

from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import (
    ChannelCapabilities,
    NotificationChannel,
)
from infrastructure.notifications.models import (
    REALTIME_CHANNEL,
    CostTier,
    DeliveryConstraints,
    DeliveryOutcome,
    OutboundMessage,
    Recipient,
)
from infrastructure.notifications.presence import PresenceTracker
from infrastructure.operations import OperationResult

logger = get_module_logger()


class RealtimePublisher(Protocol):
    """Publish/subscribe transport used by the real-time channel.

    Implementations: InMemoryRealtimePublisher (in-process) and
    integrations.redis_client.RedisPublisher (Redis pub/sub).

    Methods:
        publish: Send an event to the recipient topic; the number of
            subscribers reached is returned in ``data["receivers"]``
        health_check: Check the transport is reachable
    """

    def publish(self, recipient_id: str, event: Dict[str, Any]) -> OperationResult:
        ...

    def health_check(self) -> OperationResult:
        ...


class InMemoryRealtimePublisher:
    """In-process pub/sub for single instance deployments and tests.

    Subscribers are callables receiving the event dict; a subscriber that
    raises is counted as not reached.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Dict[str, Any]], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self, recipient_id: str, callback: Callable[[Dict[str, Any]], None]
    ) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.setdefault(recipient_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(recipient_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, recipient_id: str, event: Dict[str, Any]) -> OperationResult:
        with self._lock:
            callbacks = list(self._subscribers.get(recipient_id, []))
        receivers = 0
        for callback in callbacks:
            try:
                callback(event)
                receivers += 1
            except Exception as e:
                logger.warning(
                    "realtime_subscriber_failed",
                    recipient_id=recipient_id,
                    error=str(e),
                )
        return OperationResult.success(
            message=f"Published to {recipient_id}", data={"receivers": receivers}
        )

    def health_check(self) -> OperationResult:
        with self._lock:
            topics = sum(1 for callbacks in self._subscribers.values() if callbacks)
        return OperationResult.success(
            message="In-process publisher ready", data={"topics": topics}
        )


class RealtimeChannel(NotificationChannel):
    """Push notifications to connected clients.

    Returns SKIPPED when the recipient is not connected, and FAILED when a
    publish reaches no subscriber (stale presence) or the transport errors.

    Args:
        publisher: Pub/sub transport
        presence: Presence tracker consulted before publishing
    """

    _CAPABILITIES = ChannelCapabilities(
        synchronous=True,
        retryable=False,
        cost_tier=CostTier.FREE,
        respects_quiet_hours=False,
    )

    def __init__(self, publisher: RealtimePublisher, presence: PresenceTracker):
        self._publisher = publisher
        self._presence = presence

    @property
    def channel_name(self) -> str:
        return REALTIME_CHANNEL

    @property
    def capabilities(self) -> ChannelCapabilities:
        return self._CAPABILITIES

    def deliver(
        self,
        recipient: Recipient,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> DeliveryOutcome:
        if not self._presence.is_present(recipient.recipient_id):
            return DeliveryOutcome.skipped(
                "Recipient not connected", error_code="NOT_CONNECTED"
            )

        event = {
            "event": message.ui_event,
            "notification": {
                "id": message.record_id,
                "category": message.category,
                "title": message.title,
                "body": message.body,
                "payload": message.payload,
                "priority": constraints.priority.value,
                "created_at": message.created_at.isoformat(),
            },
        }
        result = self._publisher.publish(recipient.recipient_id, event)
        if not result.is_success:
            return DeliveryOutcome.failed(result.message, error_code=result.error_code)

        receivers = (result.data or {}).get("receivers", 0)
        if receivers < 1:
            logger.info(
                "realtime_no_subscribers",
                recipient_id=recipient.recipient_id,
                record_id=message.record_id,
            )
            return DeliveryOutcome.failed(
                "No subscriber received the event", error_code="NO_SUBSCRIBERS"
            )
        return DeliveryOutcome.delivered(provider_ref=f"receivers:{receivers}")

    def publish_event(
        self, recipient_id: str, event: Dict[str, Any]
    ) -> OperationResult:
        """Publish a non-notification event (e.g. badge counts) if connected."""
        if not self._presence.is_present(recipient_id):
            return OperationResult.success(
                message="Recipient not connected", data={"receivers": 0}
            )
        return self._publisher.publish(recipient_id, event)

    def resolve_recipient(self, recipient: Recipient) -> OperationResult:
        return OperationResult.success(
            message="Topic resolved", data={"recipient_id": recipient.recipient_id}
        )

    def health_check(self) -> OperationResult:
        return self._publisher.health_check()
