"""Notification channel abstract base classes.

All channel implementations (real-time, email, SMS) implement this
interface. The dispatcher only depends on it and on the capability
descriptor each channel declares.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from infrastructure.logging import get_module_logger
from infrastructure.notifications.errors import ChannelDeliveryFailure
from infrastructure.notifications.models import (
    CostTier,
    DeliveryConstraints,
    DeliveryOutcome,
    OutboundMessage,
    Recipient,
)
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
)
from infrastructure.resilience.retry import RetryPolicy, retry_operation

logger = get_module_logger()


@dataclass(frozen=True)
class ChannelCapabilities:
    """What the dispatcher needs to know to schedule a channel.

    Attributes:
        synchronous: Delivered inline with a bounded timeout; otherwise the
            delivery runs in the background and reports its outcome later
        retryable: The channel retries transient failures itself
        cost_tier: Relative cost of one delivery
        respects_quiet_hours: Held back during the recipient's quiet hours
            unless the notification is CRITICAL
    """

    synchronous: bool
    retryable: bool
    cost_tier: CostTier
    respects_quiet_hours: bool = False


class NotificationChannel(ABC):
    """Abstract base class for notification channels.

    Each channel handles delivery through a specific transport:
    - RealtimeChannel: pub/sub push to connected clients
    - EmailChannel: GC Notify email
    - SMSChannel: GC Notify SMS

    Channels own only their delivery attempt. They report the outcome as
    data and never touch the notification store.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Channel identifier (realtime, email, sms)."""
        pass

    @property
    @abstractmethod
    def capabilities(self) -> ChannelCapabilities:
        pass

    @abstractmethod
    def deliver(
        self,
        recipient: Recipient,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> DeliveryOutcome:
        """Deliver one message to one recipient.

        Must handle provider errors and return a FAILED or SKIPPED outcome
        rather than raising.
        """
        pass

    @abstractmethod
    def resolve_recipient(self, recipient: Recipient) -> OperationResult:
        """Resolve the channel specific address of a recipient.

        Returns:
            OperationResult with the address in the data field
            - Success: OperationResult(status=SUCCESS, data={"email": "..."})
            - Missing: PERMANENT_ERROR with error_code="MISSING_EMAIL"
        """
        pass

    @abstractmethod
    def health_check(self) -> OperationResult:
        """Check channel health (connectivity, credentials)."""
        pass


class GatewayChannel(NotificationChannel):
    """Base for channels backed by an outbound provider.

    Adds the provider circuit breaker and the channel owned bounded retry:
    transient failures are retried under ``retry_policy``; permanent
    failures and an open circuit end the attempt immediately.

    Args:
        circuit_breaker: Breaker wrapping provider calls
        retry_policy: Bounded backoff for transient failures
        sleep: Callable used between attempts
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._circuit_breaker = circuit_breaker
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    @abstractmethod
    def _send(
        self,
        address: str,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> OperationResult:
        """Single provider call returning the provider message id in data."""
        pass

    @abstractmethod
    def _address_from(self, resolved: OperationResult) -> str:
        pass

    def deliver(
        self,
        recipient: Recipient,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> DeliveryOutcome:
        resolved = self.resolve_recipient(recipient)
        if not resolved.is_success:
            logger.warning(
                "recipient_resolution_failed",
                channel=self.channel_name,
                recipient_id=recipient.recipient_id,
                error=resolved.message,
            )
            return DeliveryOutcome.failed(
                f"Failed to resolve recipient: {resolved.message}",
                error_code="RECIPIENT_RESOLUTION_FAILED",
            )

        address = self._address_from(resolved)
        result = retry_operation(
            lambda: self._attempt(address, message, constraints),
            self._retry_policy,
            sleep=self._sleep,
            operation=f"{self.channel_name}_delivery",
        )

        if result.is_success:
            return DeliveryOutcome.delivered(
                provider_ref=(result.data or {}).get("notification_id")
            )
        return DeliveryOutcome.failed(result.message, error_code=result.error_code)

    def _attempt(
        self,
        address: str,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> OperationResult:
        try:
            return self._circuit_breaker.call(
                self._send_or_raise, address, message, constraints
            )
        except CircuitBreakerOpenError as e:
            return OperationResult.permanent_error(str(e), error_code="CIRCUIT_OPEN")
        except ChannelDeliveryFailure as e:
            return OperationResult.transient_error(
                str(e), error_code=e.error_code, retry_after=e.retry_after
            )

    def _send_or_raise(
        self,
        address: str,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> OperationResult:
        # Transient failures are raised so the breaker counts them; permanent
        # rejections mean the provider is up and are returned as data.
        result = self._send(address, message, constraints)
        if not result.is_success and result.is_retryable:
            raise ChannelDeliveryFailure(
                result.message,
                error_code=result.error_code,
                retryable=True,
                retry_after=result.retry_after,
            )
        return result
