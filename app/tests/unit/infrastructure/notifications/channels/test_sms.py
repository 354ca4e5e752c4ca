"""Unit tests for SMSChannel (GC Notify implementation)."""

import pytest

from infrastructure.notifications.channels.sms import (
    SMS_MAX_LENGTH,
    SMSChannel,
    compose_sms_text,
)
from infrastructure.notifications.models import CostTier, DeliveryStatus
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import CircuitBreaker
from infrastructure.resilience.retry import RetryPolicy


@pytest.mark.unit
class TestSMSChannel:
    """Tests for SMSChannel implementation."""

    @pytest.fixture
    def sleeps(self):
        return []

    @pytest.fixture
    def sms_channel(self, mock_notify_client, mock_circuit_breaker, sleeps):
        return SMSChannel(
            mock_notify_client,
            circuit_breaker=mock_circuit_breaker,
            retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0.5),
            sleep=sleeps.append,
        )

    def test_channel_name(self, sms_channel):
        """Channel name returns 'sms'."""
        assert sms_channel.channel_name == "sms"

    def test_capabilities(self, sms_channel):
        capabilities = sms_channel.capabilities

        assert capabilities.synchronous is False
        assert capabilities.retryable is True
        assert capabilities.cost_tier == CostTier.HIGH
        assert capabilities.respects_quiet_hours is True

    def test_deliver_success(
        self,
        sms_channel,
        mock_notify_client,
        recipient_factory,
        message_factory,
        constraints_factory,
    ):
        """Successfully sends SMS to recipient."""
        outcome = sms_channel.deliver(
            recipient_factory(),
            message_factory(),
            constraints_factory(reference="rec-1:sms"),
        )

        assert outcome.status == DeliveryStatus.DELIVERED
        assert outcome.provider_ref == "notify-sms-1"
        mock_notify_client.send_sms.assert_called_once_with(
            "+15555551234",
            "Bid outbid: Someone placed a higher bid",
            reference="rec-1:sms",
        )

    def test_deliver_missing_phone(
        self,
        sms_channel,
        mock_notify_client,
        recipient_factory,
        message_factory,
        constraints_factory,
    ):
        """Handles missing phone number."""
        outcome = sms_channel.deliver(
            recipient_factory(phone_number=None),
            message_factory(),
            constraints_factory(),
        )

        assert outcome.status == DeliveryStatus.FAILED
        assert outcome.error_code == "RECIPIENT_RESOLUTION_FAILED"
        assert "Failed to resolve recipient" in outcome.error
        mock_notify_client.send_sms.assert_not_called()

    def test_transient_failure_is_retried(
        self,
        sms_channel,
        mock_notify_client,
        recipient_factory,
        message_factory,
        constraints_factory,
        sleeps,
    ):
        mock_notify_client.send_sms.side_effect = [
            OperationResult.transient_error("HTTP 503", error_code="HTTP_503"),
            OperationResult.success(data={"notification_id": "notify-sms-2"}),
        ]

        outcome = sms_channel.deliver(
            recipient_factory(), message_factory(), constraints_factory()
        )

        assert outcome.status == DeliveryStatus.DELIVERED
        assert outcome.provider_ref == "notify-sms-2"
        assert mock_notify_client.send_sms.call_count == 2
        assert sleeps == [0.5]

    def test_retry_after_is_honored(
        self,
        sms_channel,
        mock_notify_client,
        recipient_factory,
        message_factory,
        constraints_factory,
        sleeps,
    ):
        mock_notify_client.send_sms.side_effect = [
            OperationResult.transient_error(
                "Rate limited", error_code="RATE_LIMITED", retry_after=4
            ),
            OperationResult.success(data={"notification_id": "notify-sms-2"}),
        ]

        sms_channel.deliver(recipient_factory(), message_factory(), constraints_factory())

        assert sleeps == [4.0]

    def test_retries_are_bounded(
        self,
        sms_channel,
        mock_notify_client,
        recipient_factory,
        message_factory,
        constraints_factory,
    ):
        mock_notify_client.send_sms.return_value = OperationResult.transient_error(
            "HTTP 503", error_code="HTTP_503"
        )

        outcome = sms_channel.deliver(
            recipient_factory(), message_factory(), constraints_factory()
        )

        assert outcome.status == DeliveryStatus.FAILED
        assert outcome.error_code == "HTTP_503"
        assert mock_notify_client.send_sms.call_count == 3

    def test_permanent_rejection_not_retried(
        self,
        sms_channel,
        mock_notify_client,
        recipient_factory,
        message_factory,
        constraints_factory,
    ):
        """Handles GC Notify API error (400 response)."""
        mock_notify_client.send_sms.return_value = OperationResult.permanent_error(
            "Delivery gateway rejected request: HTTP 400", error_code="HTTP_400"
        )

        outcome = sms_channel.deliver(
            recipient_factory(), message_factory(), constraints_factory()
        )

        assert outcome.status == DeliveryStatus.FAILED
        assert outcome.error_code == "HTTP_400"
        mock_notify_client.send_sms.assert_called_once()

    def test_open_circuit_fails_fast(
        self,
        mock_notify_client,
        recipient_factory,
        message_factory,
        constraints_factory,
        fake_clock,
    ):
        breaker = CircuitBreaker(
            "sms-test", failure_threshold=2, timeout_seconds=60, clock=fake_clock.time
        )
        channel = SMSChannel(
            mock_notify_client,
            circuit_breaker=breaker,
            retry_policy=RetryPolicy(max_attempts=2),
            sleep=lambda seconds: None,
        )
        mock_notify_client.send_sms.return_value = OperationResult.transient_error(
            "HTTP 503", error_code="HTTP_503"
        )

        channel.deliver(recipient_factory(), message_factory(), constraints_factory())
        outcome = channel.deliver(
            recipient_factory(), message_factory(), constraints_factory()
        )

        assert outcome.status == DeliveryStatus.FAILED
        assert outcome.error_code == "CIRCUIT_OPEN"
        assert mock_notify_client.send_sms.call_count == 2

    def test_resolve_recipient_without_phone(self, sms_channel, recipient_factory):
        result = sms_channel.resolve_recipient(recipient_factory(phone_number=None))

        assert not result.is_success
        assert result.error_code == "MISSING_PHONE"

    def test_resolve_recipient(self, sms_channel, recipient_factory):
        result = sms_channel.resolve_recipient(recipient_factory())

        assert result.is_success
        assert result.data == {"phone_number": "+15555551234"}

    def test_health_check_uses_credentials(self, sms_channel, mock_notify_client):
        assert sms_channel.health_check().is_success
        mock_notify_client.check_credentials.assert_called_once()


@pytest.mark.unit
class TestComposeSmsText:
    def test_title_only(self):
        assert compose_sms_text("Payment received", "") == "Payment received"

    def test_long_text_is_truncated(self):
        text = compose_sms_text("Title", "x" * 2000)

        assert len(text) == SMS_MAX_LENGTH
        assert text.endswith("...")
