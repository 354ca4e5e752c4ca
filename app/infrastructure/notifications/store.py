"""Notification record storage.

This module provides the store interface the engine depends on and a
thread-safe in-memory implementation. The store is the single source of
truth for records, read state and per channel delivery status.
"""

import base64
import binascii
import bisect
import json
import threading
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.notifications.errors import (
    NotificationValidationError,
    RecordNotFound,
)
from infrastructure.notifications.models import (
    DeliveryStatus,
    NotificationPage,
    NotificationRecord,
)
from infrastructure.operations import OperationResult

logger = get_module_logger()

MAX_PAGE_SIZE = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def encode_cursor(created_at: datetime, record_id: str, segment: int = 0) -> str:
    """Opaque cursor for the position just after (created_at, id).

    ``segment`` is the read-state segment of an unread-first listing the
    position belongs to: 0 for unread records, 1 for read ones.
    """
    data = {"ts": created_at.isoformat(), "id": record_id}
    if segment:
        data["seg"] = segment
    raw = json.dumps(data)
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> Tuple[datetime, str, int]:
    """Decode a cursor built by ``encode_cursor``.

    Returns:
        (created_at, record_id, segment)

    Raises:
        NotificationValidationError: If the cursor is malformed
    """
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
        created_at = datetime.fromisoformat(data["ts"])
        record_id = data["id"]
        segment = data.get("seg", 0)
    except (
        binascii.Error,
        UnicodeDecodeError,
        ValueError,
        KeyError,
        TypeError,
        AttributeError,
    ):
        raise NotificationValidationError(f"Invalid pagination cursor: {cursor!r}")
    if (
        created_at.tzinfo is None
        or not isinstance(record_id, str)
        or segment not in (0, 1)
    ):
        raise NotificationValidationError(f"Invalid pagination cursor: {cursor!r}")
    return created_at, record_id, segment


class NotificationStore(ABC):
    """Storage interface for notification records.

    Implementations must apply per field updates atomically: a delivery
    status write for one channel never rewrites another channel's entry,
    and every mutation bumps ``version``. Backends that cannot be reached
    raise StoreUnavailable.
    """

    @abstractmethod
    def create(self, record: NotificationRecord) -> NotificationRecord:
        """Insert ``record`` unless a record with the same id exists.

        Returns:
            The stored record (the existing one when the id was taken)
        """
        pass

    @abstractmethod
    def get(self, record_id: str) -> Optional[NotificationRecord]:
        pass

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        pass

    @abstractmethod
    def mark_read(self, record_id: str) -> NotificationRecord:
        """Set ``read_at`` once. Already read records are returned unchanged.

        Raises:
            RecordNotFound: If the record does not exist
        """
        pass

    @abstractmethod
    def mark_all_read(self, recipient_id: str) -> int:
        """Mark every unread record of a recipient read; returns the count."""
        pass

    @abstractmethod
    def count_unread(self, recipient_id: str) -> int:
        pass

    @abstractmethod
    def list_paginated(
        self,
        recipient_id: str,
        cursor: Optional[str] = None,
        page_size: int = 20,
        unread_only: bool = False,
        category: Optional[str] = None,
        unread_first: bool = False,
    ) -> NotificationPage:
        """Newest first listing, positioned by an opaque cursor.

        With ``unread_first`` every unread record is listed (newest first)
        before any read one. Records inserted between pages never shift a
        cursor; a record read between pages may be listed in both segments.
        """
        pass

    @abstractmethod
    def set_pending(self, record_id: str, channels: List[str]) -> NotificationRecord:
        """Add PENDING entries for channels without a status yet."""
        pass

    @abstractmethod
    def update_delivery_status(
        self, record_id: str, channel: str, status: DeliveryStatus
    ) -> bool:
        """Move a channel forward. Returns False when the write was refused.

        Raises:
            RecordNotFound: If the record does not exist
        """
        pass

    @abstractmethod
    def claim_delivery(
        self, record_id: str, channel: str, owner: str, lease_seconds: int
    ) -> bool:
        """Atomically claim a non-terminal channel delivery for ``owner``."""
        pass

    @abstractmethod
    def find_stale_pending(
        self, older_than: datetime, limit: int = 50
    ) -> List[Tuple[NotificationRecord, str]]:
        """Unclaimed (record, channel) pairs still pending since ``older_than``."""
        pass

    @abstractmethod
    def get_stats(self, recipient_id: str) -> Dict[str, object]:
        pass

    @abstractmethod
    def cleanup_read_older_than(self, days: int) -> int:
        """Delete read records created more than ``days`` ago."""
        pass

    @abstractmethod
    def health_check(self) -> OperationResult:
        pass


class InMemoryNotificationStore(NotificationStore):
    """Thread-safe in-memory notification store.

    Keeps a per recipient index sorted by (created_at, id) for cursor
    pagination, and an unread counter per recipient so ``count_unread``
    never scans history.

    Args:
        clock: Callable returning the current aware datetime
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._records: Dict[str, NotificationRecord] = {}
        self._index: Dict[str, List[Tuple[datetime, str]]] = {}
        self._unread: Dict[str, int] = {}
        # (record_id, channel) -> (owner, expires_at epoch seconds)
        self._claims: Dict[Tuple[str, str], Tuple[str, float]] = {}
        self._lock = threading.RLock()

    def create(self, record: NotificationRecord) -> NotificationRecord:
        with self._lock:
            existing = self._records.get(record.id)
            if existing is not None:
                return existing.model_copy(deep=True)

            stored = record.model_copy(deep=True)
            if stored.created_at.tzinfo is None:
                stored.created_at = stored.created_at.replace(tzinfo=timezone.utc)
            stored.version = 1
            self._records[stored.id] = stored
            bisect.insort(
                self._index.setdefault(stored.recipient_id, []),
                (stored.created_at, stored.id),
            )
            if stored.read_at is None:
                self._unread[stored.recipient_id] = (
                    self._unread.get(stored.recipient_id, 0) + 1
                )

        logger.debug(
            "notification_record_created",
            record_id=stored.id,
            recipient_id=stored.recipient_id,
            category=stored.category,
        )
        return stored.model_copy(deep=True)

    def get(self, record_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def delete(self, record_id: str) -> bool:
        with self._lock:
            removed = self._remove_locked(record_id)
        if removed:
            logger.info("notification_record_deleted", record_id=record_id)
        return removed

    def mark_read(self, record_id: str) -> NotificationRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFound(record_id)
            if record.read_at is None:
                record.read_at = self._clock()
                record.version += 1
                self._unread[record.recipient_id] -= 1
            return record.model_copy(deep=True)

    def mark_all_read(self, recipient_id: str) -> int:
        now = self._clock()
        count = 0
        with self._lock:
            for _, record_id in self._index.get(recipient_id, []):
                record = self._records[record_id]
                if record.read_at is None:
                    record.read_at = now
                    record.version += 1
                    count += 1
            if count:
                self._unread[recipient_id] -= count
        return count

    def count_unread(self, recipient_id: str) -> int:
        with self._lock:
            return self._unread.get(recipient_id, 0)

    def list_paginated(
        self,
        recipient_id: str,
        cursor: Optional[str] = None,
        page_size: int = 20,
        unread_only: bool = False,
        category: Optional[str] = None,
        unread_first: bool = False,
    ) -> NotificationPage:
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise NotificationValidationError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}"
            )
        position, segment = None, 0
        if cursor:
            created_at, record_id, segment = decode_cursor(cursor)
            position = (created_at, record_id)

        # Segment filters on is_read: None lists both states together
        if unread_only:
            segments: List[Optional[bool]] = [False]
        elif unread_first:
            segments = [False, True]
        else:
            segments = [None]
        if segment >= len(segments):
            raise NotificationValidationError(f"Invalid pagination cursor: {cursor!r}")

        items: List[NotificationRecord] = []
        last_segment = segment
        has_more = False
        with self._lock:
            index = self._index.get(recipient_id, [])
            for current in range(segment, len(segments)):
                is_read = segments[current]
                start = position if current == segment else None
                i = bisect.bisect_left(index, start) if start else len(index)
                i -= 1
                while i >= 0:
                    record = self._records[index[i][1]]
                    i -= 1
                    if is_read is not None and record.is_read != is_read:
                        continue
                    if category is not None and record.category != category:
                        continue
                    if len(items) == page_size:
                        has_more = True
                        break
                    items.append(record.model_copy(deep=True))
                    last_segment = current
                if has_more:
                    break

        next_cursor = None
        if has_more:
            last = items[-1]
            next_cursor = encode_cursor(last.created_at, last.id, last_segment)
        return NotificationPage(items=items, next_cursor=next_cursor)

    def set_pending(self, record_id: str, channels: List[str]) -> NotificationRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFound(record_id)
            added = False
            for channel in channels:
                if channel not in record.delivery_status:
                    record.delivery_status[channel] = DeliveryStatus.PENDING
                    added = True
            if added:
                record.version += 1
            return record.model_copy(deep=True)

    def update_delivery_status(
        self, record_id: str, channel: str, status: DeliveryStatus
    ) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFound(record_id)
            current = record.delivery_status.get(channel)
            if current is not None and current.is_terminal:
                logger.debug(
                    "delivery_status_already_final",
                    record_id=record_id,
                    channel=channel,
                    current=current.value,
                    requested=status.value,
                )
                return False
            if status == DeliveryStatus.PENDING and current is not None:
                return False
            record.delivery_status[channel] = status
            record.version += 1
            if status.is_terminal:
                self._claims.pop((record_id, channel), None)
            return True

    def claim_delivery(
        self, record_id: str, channel: str, owner: str, lease_seconds: int
    ) -> bool:
        now = self._clock().timestamp()
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return False
            status = record.delivery_status.get(channel)
            if status is not None and status.is_terminal:
                return False
            claim = self._claims.get((record_id, channel))
            if claim is not None and claim[0] != owner and claim[1] > now:
                logger.debug(
                    "delivery_claim_held",
                    record_id=record_id,
                    channel=channel,
                    holder=claim[0],
                )
                return False
            self._claims[(record_id, channel)] = (owner, now + lease_seconds)
            return True

    def find_stale_pending(
        self, older_than: datetime, limit: int = 50
    ) -> List[Tuple[NotificationRecord, str]]:
        now = self._clock().timestamp()
        stale: List[Tuple[NotificationRecord, str]] = []
        with self._lock:
            candidates = sorted(
                (r for r in self._records.values() if r.created_at <= older_than),
                key=lambda r: (r.created_at, r.id),
            )
            for record in candidates:
                for channel in record.pending_channels():
                    claim = self._claims.get((record.id, channel))
                    if claim is not None and claim[1] > now:
                        continue
                    stale.append((record.model_copy(deep=True), channel))
                    if len(stale) >= limit:
                        return stale
        return stale

    def get_stats(self, recipient_id: str) -> Dict[str, object]:
        with self._lock:
            records = [
                self._records[rid] for _, rid in self._index.get(recipient_id, [])
            ]
            unread = self._unread.get(recipient_id, 0)
        return {
            "total": len(records),
            "unread": unread,
            "by_category": dict(Counter(r.category for r in records)),
            "by_priority": dict(Counter(r.priority.value for r in records)),
        }

    def cleanup_read_older_than(self, days: int) -> int:
        cutoff = self._clock() - timedelta(days=days)
        with self._lock:
            expired = [
                record_id
                for record_id, record in self._records.items()
                if record.read_at is not None and record.created_at < cutoff
            ]
            for record_id in expired:
                self._remove_locked(record_id)
        logger.info("notification_records_cleaned_up", count=len(expired), days=days)
        return len(expired)

    def health_check(self) -> OperationResult:
        with self._lock:
            size = len(self._records)
        return OperationResult.success(
            message="In-memory notification store ready", data={"records": size}
        )

    def _remove_locked(self, record_id: str) -> bool:
        record = self._records.pop(record_id, None)
        if record is None:
            return False
        index = self._index.get(record.recipient_id, [])
        key = (record.created_at, record.id)
        i = bisect.bisect_left(index, key)
        if i < len(index) and index[i] == key:
            del index[i]
        if record.read_at is None:
            self._unread[record.recipient_id] -= 1
        for claim_key in [k for k in self._claims if k[0] == record_id]:
            del self._claims[claim_key]
        return True
