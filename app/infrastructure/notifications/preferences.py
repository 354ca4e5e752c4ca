"""Preference storage and resolution.

The resolver turns a recipient's stored PreferenceSet (or the category
defaults when none exists) into the ordered channel plan for one dispatch.
It never writes; creating a PreferenceSet with defaults is done by
PreferenceService.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

import pytz

from infrastructure.logging import get_module_logger
from infrastructure.notifications.categories import CategoryRegistry
from infrastructure.notifications.models import (
    NotificationPriority,
    PreferenceSet,
    ResolvedPreference,
)

logger = get_module_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PreferenceRepository(ABC):
    """Persistence of PreferenceSet objects, one per recipient."""

    @abstractmethod
    def get(self, recipient_id: str) -> Optional[PreferenceSet]:
        pass

    @abstractmethod
    def save(self, preferences: PreferenceSet) -> None:
        pass


class InMemoryPreferenceRepository(PreferenceRepository):
    """Thread-safe dict backed repository."""

    def __init__(self):
        self._items: Dict[str, PreferenceSet] = {}
        self._lock = threading.Lock()

    def get(self, recipient_id: str) -> Optional[PreferenceSet]:
        with self._lock:
            item = self._items.get(recipient_id)
            return item.model_copy(deep=True) if item else None

    def save(self, preferences: PreferenceSet) -> None:
        with self._lock:
            self._items[preferences.recipient_id] = preferences.model_copy(deep=True)


class PreferenceResolver:
    """Resolve the channel plan for a recipient and category.

    Preference sets are cached per recipient for ``cache_ttl_seconds``;
    a stale entry only affects the next few dispatches.

    Args:
        repository: Where preference sets are stored
        registry: Category policies supplying defaults
        default_timezone: Timezone for recipients without one
        cache_ttl_seconds: Cache lifetime, 0 disables caching
        clock: Callable returning the current aware datetime
    """

    def __init__(
        self,
        repository: PreferenceRepository,
        registry: Optional[CategoryRegistry] = None,
        default_timezone: str = "UTC",
        cache_ttl_seconds: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._repository = repository
        self._registry = registry or CategoryRegistry()
        self._default_timezone = default_timezone
        self._cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[Optional[PreferenceSet], float]] = {}
        self._lock = threading.Lock()

    def resolve(
        self,
        recipient_id: str,
        category: str,
        priority: Optional[NotificationPriority] = None,
        now: Optional[datetime] = None,
    ) -> ResolvedPreference:
        """Compute the ordered channels and quiet hours state.

        Explicit channel opt-outs are removed. For a CRITICAL request in a
        safety relevant category the category default channels are added
        back after the recipient's own choices, except disabled ones.

        Raises:
            NotificationValidationError: If the category is unknown
        """
        policy = self._registry.get(category)
        effective_priority = priority or policy.default_priority
        preferences = self._load(recipient_id)

        if preferences is not None and category in preferences.channels:
            planned = list(preferences.channels[category])
        else:
            planned = list(policy.default_channels)

        if (
            effective_priority == NotificationPriority.CRITICAL
            and policy.safety_relevant
        ):
            planned.extend(c for c in policy.default_channels if c not in planned)

        disabled = set(preferences.disabled_channels) if preferences else set()
        channels: List[str] = []
        opted_out: List[str] = []
        for channel in planned:
            if channel in channels or channel in opted_out:
                continue
            if channel in disabled:
                opted_out.append(channel)
            else:
                channels.append(channel)

        tz_name = (
            preferences.timezone
            if preferences and preferences.timezone
            else self._default_timezone
        )
        quiet_hours = preferences.quiet_hours if preferences else None
        in_quiet_hours = False
        if quiet_hours is not None:
            local_now = (now or self._clock()).astimezone(pytz.timezone(tz_name))
            in_quiet_hours = quiet_hours.contains(local_now.time())

        return ResolvedPreference(
            channels=channels,
            quiet_hours=quiet_hours,
            timezone=tz_name,
            in_quiet_hours=in_quiet_hours,
            opted_out=opted_out,
            priority=effective_priority,
        )

    def invalidate(self, recipient_id: str) -> None:
        """Drop the cached preference set of a recipient."""
        with self._lock:
            self._cache.pop(recipient_id, None)

    def _load(self, recipient_id: str) -> Optional[PreferenceSet]:
        if self._cache_ttl_seconds <= 0:
            return self._repository.get(recipient_id)

        now = self._clock().timestamp()
        with self._lock:
            cached = self._cache.get(recipient_id)
            if cached is not None and cached[1] > now:
                return cached[0]

        preferences = self._repository.get(recipient_id)
        with self._lock:
            self._cache[recipient_id] = (preferences, now + self._cache_ttl_seconds)
        logger.debug(
            "preferences_loaded",
            recipient_id=recipient_id,
            stored=preferences is not None,
        )
        return preferences
