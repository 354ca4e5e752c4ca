"""SMS channel implementation using GC Notify."""

import time
from typing import Callable, Optional

from infrastructure.logging import get_module_logger, mask_contact
from infrastructure.notifications.channels.base import (
    ChannelCapabilities,
    GatewayChannel,
)
from infrastructure.notifications.models import (
    SMS_CHANNEL,
    CostTier,
    DeliveryConstraints,
    OutboundMessage,
    Recipient,
)
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import CircuitBreaker
from infrastructure.resilience.retry import RetryPolicy
from integrations.notify import NotifyClient

logger = get_module_logger()

# GC Notify SMS limit
SMS_MAX_LENGTH = 1600


def _join(title: str, body: str) -> str:
    return f"{title}: {body}" if body else title


def compose_sms_text(title: str, body: str) -> str:
    """Prefix the title and truncate to the provider limit."""
    full_message = _join(title, body)
    if len(full_message) > SMS_MAX_LENGTH:
        full_message = full_message[: SMS_MAX_LENGTH - 3] + "..."
    return full_message


class SMSChannel(GatewayChannel):
    """SMS notification channel using GC Notify.

    Sends SMS messages via GC Notify REST API.
    Requires phone numbers in E.164 format (+1234567890).
    """

    _CAPABILITIES = ChannelCapabilities(
        synchronous=False,
        retryable=True,
        cost_tier=CostTier.HIGH,
        respects_quiet_hours=True,
    )

    def __init__(
        self,
        client: NotifyClient,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize GC Notify SMS channel.

        Args:
            client: GC Notify API client.
            circuit_breaker: Optional breaker; a dedicated one is created if omitted.
            retry_policy: Bounded retry for transient provider failures.
            sleep: Callable used between attempts.
        """
        super().__init__(
            circuit_breaker
            or CircuitBreaker(
                name="gc_notify_sms_channel",
                failure_threshold=5,
                timeout_seconds=60,
            ),
            retry_policy=retry_policy,
            sleep=sleep,
        )
        self._client = client
        logger.info("initialized_sms_channel", backend="gc_notify")

    @property
    def channel_name(self) -> str:
        """Channel identifier."""
        return SMS_CHANNEL

    @property
    def capabilities(self) -> ChannelCapabilities:
        return self._CAPABILITIES

    def resolve_recipient(self, recipient: Recipient) -> OperationResult:
        """Validate recipient phone number.

        Args:
            recipient: Recipient to resolve.

        Returns:
            OperationResult with phone_number in data field.
        """
        if not recipient.phone_number:
            return OperationResult.permanent_error(
                message="Phone number required for SMS",
                error_code="MISSING_PHONE",
            )

        # Validate E.164 format (+1234567890)
        phone = recipient.phone_number.strip()
        if not phone.startswith("+"):
            return OperationResult.permanent_error(
                message="Phone number must be in E.164 format (+1234567890)",
                error_code="INVALID_PHONE_FORMAT",
            )

        # Basic length validation (E.164 allows 1-15 digits after +)
        digits = phone[1:]
        if not digits.isdigit() or len(digits) < 1 or len(digits) > 15:
            return OperationResult.permanent_error(
                message="Phone number must have 1-15 digits after +",
                error_code="INVALID_PHONE_LENGTH",
            )

        return OperationResult.success(
            message="Phone number validated",
            data={"phone_number": phone},
        )

    def health_check(self) -> OperationResult:
        """Check GC Notify credentials are usable."""
        return self._client.check_credentials()

    def _address_from(self, resolved: OperationResult) -> str:
        return resolved.data["phone_number"]

    def _send(
        self,
        address: str,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> OperationResult:
        original_length = len(_join(message.title, message.body))
        if original_length > SMS_MAX_LENGTH:
            logger.warning(
                "sms_message_truncated",
                phone_number=mask_contact(address),
                record_id=message.record_id,
                original_length=original_length,
            )
        text = compose_sms_text(message.title, message.body)
        return self._client.send_sms(address, text, reference=constraints.reference)
