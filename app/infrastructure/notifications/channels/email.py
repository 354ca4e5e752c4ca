"""Email channel implementation using GC Notify."""

import time
from typing import Callable, Optional

from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import (
    ChannelCapabilities,
    GatewayChannel,
)
from infrastructure.notifications.models import (
    EMAIL_CHANNEL,
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


class EmailChannel(GatewayChannel):
    """Email notification channel using GC Notify.

    Sends the rendered title as subject and the body as text through the
    configured GC Notify email template.
    """

    _CAPABILITIES = ChannelCapabilities(
        synchronous=False,
        retryable=True,
        cost_tier=CostTier.LOW,
        respects_quiet_hours=False,
    )

    def __init__(
        self,
        client: NotifyClient,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(
            circuit_breaker
            or CircuitBreaker(
                name="gc_notify_email_channel",
                failure_threshold=5,
                timeout_seconds=60,
            ),
            retry_policy=retry_policy,
            sleep=sleep,
        )
        self._client = client
        logger.info("initialized_email_channel", backend="gc_notify")

    @property
    def channel_name(self) -> str:
        """Channel identifier."""
        return EMAIL_CHANNEL

    @property
    def capabilities(self) -> ChannelCapabilities:
        return self._CAPABILITIES

    def resolve_recipient(self, recipient: Recipient) -> OperationResult:
        """Email is the native address format; it only has to be present."""
        if not recipient.email:
            return OperationResult.permanent_error(
                message="Email address required for email",
                error_code="MISSING_EMAIL",
            )
        return OperationResult.success(
            message="Email address resolved",
            data={"email": str(recipient.email)},
        )

    def health_check(self) -> OperationResult:
        return self._client.check_credentials()

    def _address_from(self, resolved: OperationResult) -> str:
        return resolved.data["email"]

    def _send(
        self,
        address: str,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> OperationResult:
        return self._client.send_email(
            address,
            subject=message.title,
            body=message.body or message.title,
            reference=constraints.reference,
        )
