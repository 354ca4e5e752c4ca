"""Preference management for recipients.

Mutations are made by the recipient (or an admin on their behalf). Every
mutation persists the full PreferenceSet and invalidates the resolver
cache entry for that recipient.
"""

from datetime import datetime, time, timezone
from typing import Callable, List, Optional

from infrastructure.logging import get_module_logger
from infrastructure.notifications.categories import CategoryRegistry
from infrastructure.notifications.errors import NotificationValidationError
from infrastructure.notifications.models import PreferenceSet, QuietHours
from infrastructure.notifications.preferences import (
    PreferenceRepository,
    PreferenceResolver,
)

logger = get_module_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PreferenceService:
    """Read and mutate recipient preference sets.

    Args:
        repository: Preference persistence
        resolver: Resolver whose cache is invalidated on mutation
        registry: Category policies (defaults and known categories)
        known_channels: Channel names a preference may reference
        clock: Callable returning the current aware datetime
    """

    def __init__(
        self,
        repository: PreferenceRepository,
        resolver: PreferenceResolver,
        registry: Optional[CategoryRegistry] = None,
        known_channels: Optional[List[str]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._repository = repository
        self._resolver = resolver
        self._registry = registry or CategoryRegistry()
        self._known_channels = known_channels
        self._clock = clock

    def get_preferences(self, recipient_id: str) -> PreferenceSet:
        """Return the recipient's preferences, persisting defaults if absent."""
        preferences = self._repository.get(recipient_id)
        if preferences is None:
            preferences = self._defaults(recipient_id)
            self._repository.save(preferences)
            logger.info("preferences_created_with_defaults", recipient_id=recipient_id)
        return preferences

    def update_category(
        self, recipient_id: str, category: str, channels: List[str]
    ) -> PreferenceSet:
        """Replace the ordered channel list of one category."""
        self._registry.get(category)
        self._check_channels(channels)
        preferences = self.get_preferences(recipient_id)
        preferences.channels[category] = list(dict.fromkeys(channels))
        return self._save(preferences, "category_updated", category=category)

    def set_channel_opt_out(
        self, recipient_id: str, channel: str, opted_out: bool = True
    ) -> PreferenceSet:
        """Disable (or re-enable) a channel type for every category."""
        self._check_channels([channel])
        preferences = self.get_preferences(recipient_id)
        disabled = [c for c in preferences.disabled_channels if c != channel]
        if opted_out:
            disabled.append(channel)
        preferences.disabled_channels = disabled
        return self._save(
            preferences, "channel_opt_out_changed", channel=channel, opted_out=opted_out
        )

    def set_quiet_hours(
        self,
        recipient_id: str,
        start: Optional[time],
        end: Optional[time],
        timezone_name: Optional[str] = None,
    ) -> PreferenceSet:
        """Set the quiet hours window; ``None`` bounds clear it."""
        preferences = self.get_preferences(recipient_id)
        if start is None or end is None:
            preferences.quiet_hours = None
        else:
            preferences.quiet_hours = QuietHours(start=start, end=end)
        if timezone_name is not None:
            try:
                preferences = PreferenceSet.model_validate(
                    {**preferences.model_dump(), "timezone": timezone_name}
                )
            except ValueError as e:
                raise NotificationValidationError(str(e)) from e
        return self._save(preferences, "quiet_hours_changed")

    def reset_to_defaults(self, recipient_id: str) -> PreferenceSet:
        """Replace the stored set with system defaults."""
        return self._save(self._defaults(recipient_id), "preferences_reset")

    def _defaults(self, recipient_id: str) -> PreferenceSet:
        return PreferenceSet(
            recipient_id=recipient_id,
            channels={
                name: list(self._registry.get(name).default_channels)
                for name in self._registry.names()
            },
            updated_at=self._clock(),
        )

    def _check_channels(self, channels: List[str]) -> None:
        if self._known_channels is None:
            return
        unknown = [c for c in channels if c not in self._known_channels]
        if unknown:
            raise NotificationValidationError(f"Unknown channels: {unknown}")

    def _save(self, preferences: PreferenceSet, event: str, **fields) -> PreferenceSet:
        preferences.updated_at = self._clock()
        self._repository.save(preferences)
        self._resolver.invalidate(preferences.recipient_id)
        logger.info(event, recipient_id=preferences.recipient_id, **fields)
        return preferences
