"""Reconciliation of deliveries left pending.

A crash between persisting a record and writing a channel's final status
leaves that channel pending. The worker re-drives such entries once they
are older than the pending max age, so every planned delivery eventually
reaches a terminal status.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from infrastructure.logging import get_module_logger
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.errors import NotificationError, RecordNotFound
from infrastructure.notifications.models import DeliveryStatus
from infrastructure.notifications.store import NotificationStore

logger = get_module_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationWorker:
    """Worker that processes batches of stale pending deliveries.

    Attributes:
        store: Notification store to scan
        dispatcher: Dispatcher used to re-drive a delivery
        pending_max_age_seconds: Entries pending longer than this are stale
        batch_size: Maximum entries per batch
        lease_seconds: Claim lease taken on each entry
        worker_id: Identifier for this worker (for claim tracking)
    """

    def __init__(
        self,
        store: NotificationStore,
        dispatcher: NotificationDispatcher,
        pending_max_age_seconds: int = 600,
        batch_size: int = 50,
        lease_seconds: int = 120,
        worker_id: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.pending_max_age_seconds = pending_max_age_seconds
        self.batch_size = batch_size
        self.lease_seconds = lease_seconds
        self.worker_id = worker_id or f"reconciler-{uuid.uuid4().hex[:8]}"
        self._clock = clock
        self.log = logger.bind(worker_id=self.worker_id)

    def process_batch(self) -> Dict[str, int]:
        """Re-drive one batch of stale pending deliveries.

        Safe to call repeatedly and from several workers; each entry is
        claimed before it is touched.

        Returns:
            Dictionary with processing statistics:
                - processed: Entries re-driven
                - delivered / failed / skipped: Final status written
                - unclaimed: Entries another worker held
                - errors: Entries that raised and stay pending
        """
        stats = {
            "processed": 0,
            "delivered": 0,
            "failed": 0,
            "skipped": 0,
            "unclaimed": 0,
            "errors": 0,
        }
        cutoff = self._clock() - timedelta(seconds=self.pending_max_age_seconds)
        entries = self.store.find_stale_pending(cutoff, limit=self.batch_size)
        if not entries:
            self.log.debug("reconciliation_no_stale_entries")
            return stats

        self.log.info("reconciliation_batch_start", entry_count=len(entries))

        for record, channel in entries:
            if not self.store.claim_delivery(
                record.id, channel, self.worker_id, self.lease_seconds
            ):
                stats["unclaimed"] += 1
                continue

            try:
                outcome = self.dispatcher.redeliver(record.id, channel)
            except RecordNotFound:
                self.log.info(
                    "reconciliation_record_gone", record_id=record.id, channel=channel
                )
                continue
            except NotificationError as e:
                self.log.error(
                    "reconciliation_entry_failed",
                    record_id=record.id,
                    channel=channel,
                    error=str(e),
                )
                stats["errors"] += 1
                continue

            stats["processed"] += 1
            if outcome.status == DeliveryStatus.DELIVERED:
                stats["delivered"] += 1
            elif outcome.status == DeliveryStatus.SKIPPED:
                stats["skipped"] += 1
            else:
                stats["failed"] += 1

        self.log.info("reconciliation_batch_complete", **stats)
        return stats
