import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure the application package root is on sys.path so importing application
# modules (e.g. `infrastructure.notifications`) works during pytest collection
# regardless of the directory pytest is invoked from.
project_root = str(Path(__file__).resolve().parents[1])
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import pytest


class FakeClock:
    """Controllable clock shared by time dependent components.

    ``now`` is used where components expect an aware datetime and ``time``
    where they expect epoch seconds; both read the same instant.
    """

    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def time(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float) -> None:
        self._now = self._now + timedelta(seconds=seconds)

    def set(self, value: datetime) -> None:
        self._now = value


@pytest.fixture
def fake_clock():
    """Clock starting at 2024-06-01 12:00 UTC.

    Example:
        store = InMemoryNotificationStore(clock=fake_clock.now)
        guard = InMemoryDedupeGuard(clock=fake_clock.time)
        fake_clock.advance(301)
    """
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))
