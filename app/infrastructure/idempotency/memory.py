"""In-memory dedupe guard (single process)."""

import threading
import time
from typing import Callable, Dict, Tuple

from infrastructure.idempotency.guard import DedupeDecision, DedupeGuard
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult

logger = get_module_logger()


class InMemoryDedupeGuard(DedupeGuard):
    """Thread-safe reservation table held in process memory.

    Suitable for tests and single-instance deployments. Expired entries are
    swept from the table at most every ``sweep_interval_seconds``, on the
    next reservation after the interval elapsed.

    Args:
        clock: Callable returning the current time in epoch seconds
        sweep_interval_seconds: Minimum time between two sweeps
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: int = 60,
    ):
        self._clock = clock
        self._sweep_interval_seconds = sweep_interval_seconds
        self._next_sweep_at = clock() + sweep_interval_seconds
        self._reservations: Dict[Tuple[str, str], Tuple[str, float]] = {}
        self._lock = threading.Lock()
        logger.info("initialized_dedupe_guard", backend="memory")

    def _reserve(
        self,
        dedupe_key: str,
        recipient_id: str,
        window_seconds: int,
        candidate_record_id: str,
    ) -> DedupeDecision:
        key = (dedupe_key, recipient_id)
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep_at:
                self._purge_locked(now)
                self._next_sweep_at = now + self._sweep_interval_seconds
            existing = self._reservations.get(key)
            if existing is not None:
                record_id, expires_at = existing
                if expires_at > now:
                    self._reservations[key] = (record_id, now + window_seconds)
                    return DedupeDecision.duplicate(record_id)
            self._reservations[key] = (candidate_record_id, now + window_seconds)
        return DedupeDecision.new()

    def _release(self, dedupe_key: str, recipient_id: str, record_id: str) -> None:
        key = (dedupe_key, recipient_id)
        with self._lock:
            existing = self._reservations.get(key)
            if existing is not None and existing[0] == record_id:
                del self._reservations[key]

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            purged = self._purge_locked(now)
        if purged:
            logger.info("dedupe_reservations_purged", count=purged)
        return purged

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, (_, exp) in self._reservations.items() if exp <= now]
        for k in expired:
            del self._reservations[k]
        return len(expired)

    def health_check(self) -> OperationResult:
        with self._lock:
            size = len(self._reservations)
        return OperationResult.success(
            message="In-memory dedupe guard ready", data={"reservations": size}
        )
