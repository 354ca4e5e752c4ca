"""Dedupe guard abstract base class."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult

logger = get_module_logger()


class DedupeBackendError(Exception):
    """Raised by guard backends when the reservation store cannot answer."""

    pass


@dataclass(frozen=True)
class DedupeDecision:
    """Outcome of a reservation attempt.

    Attributes:
        is_new: True when the caller owns the reservation and must create
            the record under the id it reserved with
        existing_record_id: Record id holding a live reservation for the key
        determined: False when the backend failed and the guard could not
            tell; the caller proceeds as if new
    """

    is_new: bool
    existing_record_id: Optional[str] = None
    determined: bool = True

    @classmethod
    def new(cls) -> "DedupeDecision":
        return cls(is_new=True)

    @classmethod
    def duplicate(cls, record_id: str) -> "DedupeDecision":
        return cls(is_new=False, existing_record_id=record_id)

    @classmethod
    def undetermined(cls) -> "DedupeDecision":
        return cls(is_new=True, determined=False)


class DedupeGuard(ABC):
    """Atomic insert-if-absent reservation of (dedupe key, recipient).

    Implementations must make ``_reserve`` a single conditional write so two
    concurrent callers with the same key resolve to exactly one new
    reservation. A reservation lives for ``window_seconds`` after the last
    hit: every duplicate hit slides the window forward.
    """

    def check_and_reserve(
        self,
        dedupe_key: str,
        recipient_id: str,
        window_seconds: int,
        candidate_record_id: str,
    ) -> DedupeDecision:
        """Reserve the key for ``candidate_record_id`` or return the holder.

        Backend failures fail closed: the decision is ``undetermined`` and
        the caller creates a new record rather than dropping the event.
        """
        try:
            return self._reserve(
                dedupe_key, recipient_id, window_seconds, candidate_record_id
            )
        except DedupeBackendError as e:
            logger.error(
                "dedupe_guard_unavailable",
                dedupe_key=dedupe_key,
                recipient_id=recipient_id,
                error=str(e),
            )
            return DedupeDecision.undetermined()

    def release(self, dedupe_key: str, recipient_id: str, record_id: str) -> None:
        """Drop a reservation if it is still held by ``record_id``.

        Used when the record could not be persisted, so a retry of the same
        event is not collapsed onto a record that never existed.
        """
        try:
            self._release(dedupe_key, recipient_id, record_id)
        except DedupeBackendError as e:
            logger.warning(
                "dedupe_release_failed",
                dedupe_key=dedupe_key,
                recipient_id=recipient_id,
                error=str(e),
            )

    @abstractmethod
    def _reserve(
        self,
        dedupe_key: str,
        recipient_id: str,
        window_seconds: int,
        candidate_record_id: str,
    ) -> DedupeDecision:
        pass

    @abstractmethod
    def _release(self, dedupe_key: str, recipient_id: str, record_id: str) -> None:
        pass

    def purge_expired(self) -> int:
        """Drop expired reservations, returning how many.

        Backends with native expiry have nothing to purge.
        """
        return 0

    @abstractmethod
    def health_check(self) -> OperationResult:
        """Check the reservation backend is reachable."""
        pass
