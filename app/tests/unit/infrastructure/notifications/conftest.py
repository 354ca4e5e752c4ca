"""Test fixtures for notification infrastructure tests."""

import threading
from datetime import time
from typing import Callable, List, Optional

import pytest

from infrastructure.idempotency import InMemoryDedupeGuard
from infrastructure.notifications.channels.base import (
    ChannelCapabilities,
    NotificationChannel,
)
from infrastructure.notifications.channels.realtime import (
    InMemoryRealtimePublisher,
    RealtimeChannel,
)
from infrastructure.notifications.directory import InMemoryRecipientDirectory
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.errors import StoreUnavailable
from infrastructure.notifications.models import (
    CostTier,
    DeliveryOutcome,
    PreferenceSet,
    QuietHours,
    Recipient,
)
from infrastructure.notifications.preferences import (
    InMemoryPreferenceRepository,
    PreferenceResolver,
)
from infrastructure.notifications.presence import PresenceTracker
from infrastructure.notifications.store import InMemoryNotificationStore
from infrastructure.operations import OperationResult


class StubChannel(NotificationChannel):
    """Channel double recording every delivery.

    Args:
        name: Channel name
        outcome: Outcome returned by ``deliver``
        side_effect: Exception raised by ``deliver`` instead
        synchronous / cost_tier / respects_quiet_hours: Capabilities
        block: Event waited on before returning (simulates a slow provider)
    """

    def __init__(
        self,
        name: str,
        outcome: Optional[DeliveryOutcome] = None,
        side_effect: Optional[Exception] = None,
        synchronous: bool = False,
        cost_tier: CostTier = CostTier.LOW,
        respects_quiet_hours: bool = False,
        block: Optional[threading.Event] = None,
    ):
        self._name = name
        self.outcome = outcome or DeliveryOutcome.delivered(provider_ref=f"{name}-ref")
        self.side_effect = side_effect
        self.block = block
        self.calls: List[tuple] = []
        self._capabilities = ChannelCapabilities(
            synchronous=synchronous,
            retryable=not synchronous,
            cost_tier=cost_tier,
            respects_quiet_hours=respects_quiet_hours,
        )

    @property
    def channel_name(self) -> str:
        return self._name

    @property
    def capabilities(self) -> ChannelCapabilities:
        return self._capabilities

    def deliver(self, recipient, message, constraints) -> DeliveryOutcome:
        self.calls.append((recipient, message, constraints))
        if self.block is not None:
            self.block.wait(5)
        if self.side_effect is not None:
            raise self.side_effect
        return self.outcome

    def resolve_recipient(self, recipient) -> OperationResult:
        return OperationResult.success(data={"recipient_id": recipient.recipient_id})

    def health_check(self) -> OperationResult:
        return OperationResult.success(message="stub ready")



class FlakyStore(InMemoryNotificationStore):
    """In-memory store whose creates raise StoreUnavailable.

    The first ``succeed_first`` creates go through, then the next
    ``fail_creates`` raise.
    """

    def __init__(self, fail_creates: int = 1, succeed_first: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.fail_creates = fail_creates
        self.succeed_first = succeed_first

    def create(self, record):
        if self.succeed_first > 0:
            self.succeed_first -= 1
            return super().create(record)
        if self.fail_creates > 0:
            self.fail_creates -= 1
            raise StoreUnavailable("database unreachable")
        return super().create(record)


@pytest.fixture
def recipient_factory():
    """Factory for creating Recipient instances.

    Example:
        recipient = recipient_factory("user-1", phone_number="+15555551234")
    """

    def _factory(
        recipient_id: str = "user-1",
        email: Optional[str] = "user1@example.com",
        phone_number: Optional[str] = "+15555551234",
        timezone: Optional[str] = None,
    ) -> Recipient:
        return Recipient(
            recipient_id=recipient_id,
            email=email,
            phone_number=phone_number,
            timezone=timezone,
        )

    return _factory


@pytest.fixture
def store(fake_clock):
    return InMemoryNotificationStore(clock=fake_clock.now)


@pytest.fixture
def dedupe_guard(fake_clock):
    return InMemoryDedupeGuard(clock=fake_clock.time)


@pytest.fixture
def preference_repository():
    return InMemoryPreferenceRepository()


@pytest.fixture
def resolver(preference_repository, fake_clock):
    return PreferenceResolver(
        preference_repository, cache_ttl_seconds=0, clock=fake_clock.now
    )


@pytest.fixture
def presence(fake_clock):
    return PresenceTracker(ttl_seconds=90, clock=fake_clock.time)


@pytest.fixture
def publisher():
    return InMemoryRealtimePublisher()


@pytest.fixture
def directory(recipient_factory):
    return InMemoryRecipientDirectory(
        [
            recipient_factory("user-1"),
            recipient_factory(
                "user-2", email="user2@example.com", phone_number="+15555550002"
            ),
        ]
    )


@pytest.fixture
def stub_channel_factory():
    """Factory for StubChannel doubles.

    Example:
        sms = stub_channel_factory("sms", cost_tier=CostTier.HIGH)
    """

    def _factory(name: str, **kwargs) -> StubChannel:
        return StubChannel(name, **kwargs)

    return _factory


@pytest.fixture
def set_preferences(preference_repository):
    """Store a PreferenceSet for a recipient.

    Example:
        set_preferences("user-1", channels={"bid_outcome": ["realtime", "sms"]})
    """

    def _set(
        recipient_id: str,
        channels: Optional[dict] = None,
        disabled_channels: Optional[List[str]] = None,
        quiet_hours: Optional[tuple] = None,
        timezone: Optional[str] = None,
    ) -> PreferenceSet:
        preferences = PreferenceSet(
            recipient_id=recipient_id,
            channels=channels or {},
            disabled_channels=disabled_channels or [],
            quiet_hours=(
                QuietHours(start=quiet_hours[0], end=quiet_hours[1])
                if quiet_hours
                else None
            ),
            timezone=timezone,
        )
        preference_repository.save(preferences)
        return preferences

    return _set


@pytest.fixture
def quiet_now():
    """Quiet hours window covering the fake clock's 12:00 UTC."""
    return (time(11, 0), time(13, 0))


@pytest.fixture
def make_dispatcher(store, dedupe_guard, resolver, presence, directory, fake_clock):
    """Build a NotificationDispatcher wired to the in-memory fixtures.

    Dispatchers created here are shut down after the test.

    Example:
        dispatcher = make_dispatcher({"sms": sms_stub}, realtime_timeout_seconds=0.2)
    """
    created: List[NotificationDispatcher] = []

    def _factory(channels: dict, **kwargs) -> NotificationDispatcher:
        options = {
            "store": store,
            "dedupe_guard": dedupe_guard,
            "resolver": resolver,
            "presence": presence,
            "channels": channels,
            "directory": directory,
            "clock": fake_clock.now,
            "max_workers": 4,
        }
        options.update(kwargs)
        dispatcher = NotificationDispatcher(**options)
        created.append(dispatcher)
        return dispatcher

    yield _factory

    for dispatcher in created:
        dispatcher.shutdown(wait_for_deliveries=True)


@pytest.fixture
def connect(presence, publisher):
    """Mark a recipient connected and subscribe a collector to their topic.

    Returns:
        Function returning the list that receives published events
    """

    def _connect(recipient_id: str, connection_id: str = "conn-1") -> List[dict]:
        received: List[dict] = []
        presence.on_connect(recipient_id, connection_id)
        publisher.subscribe(recipient_id, received.append)
        return received

    return _connect


@pytest.fixture
def realtime_channel(publisher, presence):
    return RealtimeChannel(publisher, presence)


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    return lambda seconds: None


@pytest.fixture
def flaky_store_factory(fake_clock):
    """Factory for stores that fail their first creates.

    Example:
        store = flaky_store_factory(fail_creates=2)
    """

    def _factory(fail_creates: int = 1, succeed_first: int = 0) -> FlakyStore:
        return FlakyStore(
            fail_creates=fail_creates,
            succeed_first=succeed_first,
            clock=fake_clock.now,
        )

    return _factory
