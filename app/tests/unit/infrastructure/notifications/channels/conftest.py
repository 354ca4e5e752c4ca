"""Feature-level fixtures for notification channel tests."""

from unittest.mock import MagicMock

import pytest

from infrastructure.notifications.models import (
    DeliveryConstraints,
    NotificationPriority,
    OutboundMessage,
)
from infrastructure.operations import OperationResult


@pytest.fixture
def mock_circuit_breaker():
    """Mock CircuitBreaker that always allows calls through.

    Returns:
        MagicMock CircuitBreaker that executes functions normally
    """
    breaker = MagicMock()

    def call_side_effect(func, *args, **kwargs):
        return func(*args, **kwargs)

    breaker.call.side_effect = call_side_effect
    return breaker


@pytest.fixture
def mock_notify_client():
    """Mock NotifyClient accepting every message.

    Returns:
        MagicMock configured with successful GC Notify responses
    """
    client = MagicMock()
    client.send_sms.return_value = OperationResult.success(
        message="SMS accepted by GC Notify",
        data={"notification_id": "notify-sms-1"},
    )
    client.send_email.return_value = OperationResult.success(
        message="Email accepted by GC Notify",
        data={"notification_id": "notify-email-1"},
    )
    client.check_credentials.return_value = OperationResult.success(
        message="GC Notify API credentials valid"
    )
    return client


@pytest.fixture
def message_factory(fake_clock):
    """Factory for OutboundMessage instances.

    Example:
        message = message_factory(title="Outbid", body="You were outbid")
    """

    def _factory(
        title: str = "Bid outbid",
        body: str = "Someone placed a higher bid",
        record_id: str = "rec-1",
        category: str = "bid_outbid",
        payload: dict = None,
    ) -> OutboundMessage:
        return OutboundMessage(
            record_id=record_id,
            category=category,
            title=title,
            body=body,
            payload=payload or {"auction_id": "a-9"},
            ui_event=category.replace("_", "-"),
            created_at=fake_clock.now(),
        )

    return _factory


@pytest.fixture
def constraints_factory():
    def _factory(
        priority: NotificationPriority = NotificationPriority.HIGH,
        reference: str = "rec-1:sms",
        timeout_seconds: float = None,
    ) -> DeliveryConstraints:
        return DeliveryConstraints(
            priority=priority, reference=reference, timeout_seconds=timeout_seconds
        )

    return _factory
