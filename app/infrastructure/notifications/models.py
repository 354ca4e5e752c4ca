"""Notification engine core models.

Requests enter the engine as NotificationRequest, are persisted as one
NotificationRecord per recipient and delivered through channels, each
delivery reporting a DeliveryOutcome.

Uses Pydantic BaseModel for:
- Runtime input validation of requests coming from event producers
- RFC 5322 compliant email validation (EmailStr)
- Type safety with proper error messages
"""

from datetime import datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

import pytz
from pydantic import BaseModel, EmailStr, Field, field_validator

# Channel names
REALTIME_CHANNEL = "realtime"
EMAIL_CHANNEL = "email"
SMS_CHANNEL = "sms"


class NotificationPriority(Enum):
    """Notification priority levels, ordered LOW < NORMAL < HIGH < CRITICAL.

    CRITICAL bypasses quiet hours. For safety relevant categories it also
    brings back the category's default channels the recipient removed,
    unless the channel type is disabled outright.
    """

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.LOW: 0,
    NotificationPriority.NORMAL: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.CRITICAL: 3,
}


class DeliveryStatus(Enum):
    """Per channel delivery state.

    PENDING moves forward to exactly one of the terminal states and never
    back.
    """

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self != DeliveryStatus.PENDING


class CostTier(Enum):
    """Relative cost of a delivery on a channel."""

    FREE = "free"
    LOW = "low"
    HIGH = "high"


class Recipient(BaseModel):
    """Contact details of a notification recipient.

    Channels resolve their own address from the recipient (SMS needs a
    phone number, email an address).

    Attributes:
        recipient_id: Owning user id
        email: Email address (optional, validated with EmailStr)
        phone_number: Phone number for SMS (optional, format: +1234567890)
        timezone: IANA timezone name (optional)
    """

    recipient_id: str
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: Optional[str]) -> Optional[str]:
        """Validate E.164 phone format if provided."""
        if v is None:
            return v
        if not v.startswith("+") or not v[1:].isdigit():
            raise ValueError(f"Phone number must be in E.164 format: {v}")
        if len(v) < 8 or len(v) > 16:
            raise ValueError(f"Phone number length invalid: {v}")
        return v


class QuietHours(BaseModel):
    """Daily window during which time sensitive channels are held back.

    ``end`` earlier than ``start`` means the window spans midnight
    (22:00 to 07:00). Equal bounds describe an empty window.
    """

    start: time
    end: time

    def contains(self, local_time: time) -> bool:
        t = local_time.replace(tzinfo=None)
        if self.start == self.end:
            return False
        if self.start < self.end:
            return self.start <= t < self.end
        return t >= self.start or t < self.end


def _validate_timezone(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        pytz.timezone(v)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone: {v}")
    return v


class PreferenceSet(BaseModel):
    """Stored notification preferences of one recipient.

    Attributes:
        recipient_id: Owner of the preferences
        timezone: Timezone for quiet hours (system default when unset)
        channels: Category -> ordered list of enabled channels. Categories
            missing here use the category defaults.
        disabled_channels: Channel types the recipient switched off entirely
        quiet_hours: Optional quiet hours window
        updated_at: Last mutation time
    """

    recipient_id: str
    timezone: Optional[str] = None
    channels: Dict[str, List[str]] = Field(default_factory=dict)
    disabled_channels: List[str] = Field(default_factory=list)
    quiet_hours: Optional[QuietHours] = None
    updated_at: Optional[datetime] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_timezone(v)


class ResolvedPreference(BaseModel):
    """Effective channel plan for one recipient and category."""

    channels: List[str]
    quiet_hours: Optional[QuietHours] = None
    timezone: str
    in_quiet_hours: bool = False
    opted_out: List[str] = Field(default_factory=list)
    priority: NotificationPriority


class NotificationRequest(BaseModel):
    """A domain event to be fanned out to recipients.

    Attributes:
        category: Notification category (e.g. "bid_outbid")
        recipients: Recipient ids (required, minimum 1, duplicates dropped)
        payload: Category specific data passed through untouched
        priority: Explicit priority; the category default applies when unset
        source_event_id: Upstream event id; identifies the logical event
        dedupe_key: Explicit dedupe key; derived when absent
        title: Optional rendered title
        body: Optional rendered text
        metadata: Additional context (correlation ids, producer name)

    Example:
        request = NotificationRequest(
            category="bid_outbid",
            recipients=["user-1"],
            payload={"auction_id": "a-9", "amount": 120},
            source_event_id="bid-42",
        )
    """

    category: str
    recipients: List[str] = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: Optional[NotificationPriority] = None
    source_event_id: Optional[str] = None
    dedupe_key: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        """Ensure category is not empty."""
        if not v or not v.strip():
            raise ValueError("Notification category cannot be empty")
        return v.strip()

    @field_validator("recipients")
    @classmethod
    def validate_recipients(cls, v: List[str]) -> List[str]:
        """Reject blank ids and drop repeated ones, keeping order."""
        seen = []
        for recipient_id in v:
            if not recipient_id or not recipient_id.strip():
                raise ValueError("Recipient id cannot be empty")
            if recipient_id not in seen:
                seen.append(recipient_id)
        return seen


class NotificationRecord(BaseModel):
    """Persisted notification for one recipient.

    ``read_at`` is set once and never cleared. ``delivery_status`` only
    grows, and each channel entry only moves forward.
    """

    id: str
    recipient_id: str
    category: str
    priority: NotificationPriority
    payload: Dict[str, Any] = Field(default_factory=dict)
    dedupe_key: str
    title: Optional[str] = None
    body: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    read_at: Optional[datetime] = None
    delivery_status: Dict[str, DeliveryStatus] = Field(default_factory=dict)
    version: int = 0

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def pending_channels(self) -> List[str]:
        return [
            channel
            for channel, status in self.delivery_status.items()
            if status == DeliveryStatus.PENDING
        ]


class OutboundMessage(BaseModel):
    """Rendered content handed to a channel."""

    record_id: str
    category: str
    title: str
    body: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    ui_event: str
    created_at: datetime


class DeliveryConstraints(BaseModel):
    """Per attempt constraints handed to a channel.

    Attributes:
        priority: Effective priority of the notification
        timeout_seconds: Bound for synchronous channels
        reference: Stable provider reference, "<record id>:<channel>"
    """

    priority: NotificationPriority
    timeout_seconds: Optional[float] = None
    reference: str


class DeliveryOutcome(BaseModel):
    """Result of one channel delivery.

    Attributes:
        status: Delivery status reported for the channel
        provider_ref: Provider message id when delivered
        error: Human readable reason for failed/skipped outcomes
        error_code: Machine readable reason
        attempted: False when no attempt was made by this call (the status
            was already final, or another worker holds the delivery)
    """

    status: DeliveryStatus
    provider_ref: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    attempted: bool = True

    @classmethod
    def delivered(cls, provider_ref: Optional[str] = None) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.DELIVERED, provider_ref=provider_ref)

    @classmethod
    def failed(cls, error: str, error_code: Optional[str] = None) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.FAILED, error=error, error_code=error_code)

    @classmethod
    def skipped(
        cls, error: str, error_code: Optional[str] = None
    ) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.SKIPPED, error=error, error_code=error_code)

    @classmethod
    def pending(cls, reason: str, attempted: bool = True) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.PENDING, error=reason, attempted=attempted)


class RecipientDispatch(BaseModel):
    """Dispatch result for one recipient.

    Attributes:
        recipient_id: Recipient the record belongs to
        record_id: Created or reused record
        duplicate: True when a live dedupe reservation already existed
        created: True when this dispatch wrote the record to the store
        dedupe_determined: False when the dedupe backend could not answer
        per_channel: Channel name -> outcome of this dispatch
    """

    recipient_id: str
    record_id: str
    duplicate: bool = False
    created: bool = False
    dedupe_determined: bool = True
    per_channel: Dict[str, DeliveryOutcome] = Field(default_factory=dict)


class DispatchResult(BaseModel):
    """Aggregate result of ``NotificationDispatcher.dispatch``."""

    category: str
    priority: NotificationPriority
    dedupe_key: str
    recipients: List[RecipientDispatch] = Field(default_factory=list)

    @property
    def record_ids(self) -> Dict[str, str]:
        """Recipient id -> record id."""
        return {r.recipient_id: r.record_id for r in self.recipients}

    def for_recipient(self, recipient_id: str) -> Optional[RecipientDispatch]:
        for result in self.recipients:
            if result.recipient_id == recipient_id:
                return result
        return None


class NotificationPage(BaseModel):
    """One page of a cursor paginated listing."""

    items: List[NotificationRecord] = Field(default_factory=list)
    next_cursor: Optional[str] = None
