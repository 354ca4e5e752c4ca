"""Presence tracking for real-time connections.

Fed by the real-time transport's connect/disconnect events. Presence is a
hint used to order channels; it never decides whether a notification is
stored.
"""

import threading
import time
from typing import Callable, Dict, Set, Tuple

from infrastructure.logging import get_module_logger

logger = get_module_logger()


class PresenceTracker:
    """In-process map of recipient -> open connections.

    A recipient may hold several connections (tabs, devices). Connections
    that miss heartbeats for ``ttl_seconds`` are treated as gone, and are
    swept on the first connect after each ``sweep_interval_seconds``.

    Args:
        ttl_seconds: Lifetime of a connection without heartbeat
        clock: Callable returning the current time in epoch seconds
        sweep_interval_seconds: Minimum time between two sweeps
    """

    def __init__(
        self,
        ttl_seconds: int = 90,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: int = 60,
    ):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._sweep_interval_seconds = sweep_interval_seconds
        self._next_sweep_at = clock() + sweep_interval_seconds
        # connection_id -> (recipient_id, last_seen_at)
        self._connections: Dict[str, Tuple[str, float]] = {}
        self._by_recipient: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def on_connect(self, recipient_id: str, connection_id: str) -> None:
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep_at:
                self._purge_locked(now)
                self._next_sweep_at = now + self._sweep_interval_seconds
            previous = self._connections.get(connection_id)
            if previous is not None and previous[0] != recipient_id:
                self._forget(connection_id)
            self._connections[connection_id] = (recipient_id, now)
            self._by_recipient.setdefault(recipient_id, set()).add(connection_id)
        logger.debug(
            "presence_connected", recipient_id=recipient_id, connection_id=connection_id
        )

    def on_disconnect(self, connection_id: str) -> None:
        with self._lock:
            recipient_id = self._forget(connection_id)
        if recipient_id is not None:
            logger.debug(
                "presence_disconnected",
                recipient_id=recipient_id,
                connection_id=connection_id,
            )

    def heartbeat(self, connection_id: str) -> bool:
        """Refresh a connection; returns False for unknown connections."""
        with self._lock:
            entry = self._connections.get(connection_id)
            if entry is None:
                return False
            self._connections[connection_id] = (entry[0], self._clock())
            return True

    def is_present(self, recipient_id: str) -> bool:
        now = self._clock()
        with self._lock:
            for connection_id in list(self._by_recipient.get(recipient_id, ())):
                _, last_seen = self._connections[connection_id]
                if now - last_seen < self._ttl_seconds:
                    return True
                self._forget(connection_id)
        return False

    def connection_count(self, recipient_id: str) -> int:
        with self._lock:
            return len(self._by_recipient.get(recipient_id, ()))

    def purge_expired(self) -> int:
        """Drop connections past their TTL, returning how many."""
        now = self._clock()
        with self._lock:
            purged = self._purge_locked(now)
        if purged:
            logger.info("presence_expired_connections_purged", count=purged)
        return purged

    def _purge_locked(self, now: float) -> int:
        expired = [
            cid
            for cid, (_, last_seen) in self._connections.items()
            if now - last_seen >= self._ttl_seconds
        ]
        for connection_id in expired:
            self._forget(connection_id)
        return len(expired)

    def _forget(self, connection_id: str):
        # Caller holds the lock
        entry = self._connections.pop(connection_id, None)
        if entry is None:
            return None
        recipient_id = entry[0]
        connections = self._by_recipient.get(recipient_id)
        if connections is not None:
            connections.discard(connection_id)
            if not connections:
                del self._by_recipient[recipient_id]
        return recipient_id
