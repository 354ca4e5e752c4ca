"""Notification category policies.

The category is the single authoritative taxonomy of the engine. Each
category carries its default channel order, default priority and delivery
guarantees; UI event names are derived from the category for display only.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from infrastructure.notifications.errors import NotificationValidationError
from infrastructure.notifications.models import (
    EMAIL_CHANNEL,
    REALTIME_CHANNEL,
    SMS_CHANNEL,
    NotificationPriority,
)


@dataclass(frozen=True)
class CategoryPolicy:
    """Server side defaults for one category.

    Attributes:
        name: Category identifier
        default_channels: Ordered channels used when the recipient has no
            preference for the category
        default_priority: Priority applied when the request sets none
        guaranteed_delivery: Every resolved channel is attempted even when
            the real-time channel already reached the recipient
        safety_relevant: CRITICAL requests restore the default channels the
            recipient removed for this category
    """

    name: str
    default_channels: Tuple[str, ...]
    default_priority: NotificationPriority = NotificationPriority.NORMAL
    guaranteed_delivery: bool = False
    safety_relevant: bool = False

    @property
    def ui_event(self) -> str:
        """Display event name published to UI subscribers."""
        return self.name.replace("_", "-")


DEFAULT_CATEGORIES: Tuple[CategoryPolicy, ...] = (
    CategoryPolicy(
        name="new_bid",
        default_channels=(REALTIME_CHANNEL, EMAIL_CHANNEL),
        default_priority=NotificationPriority.HIGH,
    ),
    CategoryPolicy(
        name="bid_outbid",
        default_channels=(REALTIME_CHANNEL, SMS_CHANNEL, EMAIL_CHANNEL),
        default_priority=NotificationPriority.HIGH,
    ),
    CategoryPolicy(
        name="bid_outcome",
        default_channels=(REALTIME_CHANNEL, EMAIL_CHANNEL, SMS_CHANNEL),
        default_priority=NotificationPriority.HIGH,
        guaranteed_delivery=True,
    ),
    CategoryPolicy(
        name="auction_ending",
        default_channels=(REALTIME_CHANNEL, EMAIL_CHANNEL),
        default_priority=NotificationPriority.HIGH,
    ),
    CategoryPolicy(
        name="new_message",
        default_channels=(REALTIME_CHANNEL, EMAIL_CHANNEL),
    ),
    CategoryPolicy(
        name="payment",
        default_channels=(REALTIME_CHANNEL, EMAIL_CHANNEL, SMS_CHANNEL),
        default_priority=NotificationPriority.HIGH,
        guaranteed_delivery=True,
    ),
    CategoryPolicy(
        name="security_alert",
        default_channels=(REALTIME_CHANNEL, EMAIL_CHANNEL, SMS_CHANNEL),
        default_priority=NotificationPriority.CRITICAL,
        guaranteed_delivery=True,
        safety_relevant=True,
    ),
    CategoryPolicy(
        name="system_broadcast",
        default_channels=(REALTIME_CHANNEL,),
        default_priority=NotificationPriority.LOW,
    ),
)


class CategoryRegistry:
    """Lookup of category policies by name."""

    def __init__(self, policies: Iterable[CategoryPolicy] = DEFAULT_CATEGORIES):
        self._policies: Dict[str, CategoryPolicy] = {}
        for policy in policies:
            self.register(policy)

    def register(self, policy: CategoryPolicy) -> None:
        if not policy.default_channels:
            raise ValueError(f"Category {policy.name} needs at least one channel")
        self._policies[policy.name] = policy

    def get(self, category: str) -> CategoryPolicy:
        """Return the policy for ``category``.

        Raises:
            NotificationValidationError: If the category is unknown
        """
        policy = self._policies.get(category)
        if policy is None:
            raise NotificationValidationError(
                f"Unknown notification category: {category}"
            )
        return policy

    def names(self) -> List[str]:
        return sorted(self._policies)

    def __contains__(self, category: object) -> bool:
        return category in self._policies
