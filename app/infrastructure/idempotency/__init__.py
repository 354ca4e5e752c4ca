"""Deduplication guard for notification events.

Collapses logically identical notification requests onto one record per
recipient inside a dedupe window. Reservations are atomic insert-if-absent
writes against a shared backend (Redis) or process memory.

Usage:

    from infrastructure.idempotency import DedupeKeyBuilder, create_dedupe_guard

    guard = create_dedupe_guard(settings)
    key = DedupeKeyBuilder().for_request("bid_outbid", ["u1"], source_event_id="bid-42")

    decision = guard.check_and_reserve(key, "u1", 300, candidate_record_id=new_id)
    if decision.is_new:
        ...  # create the record under new_id
    else:
        ...  # reuse decision.existing_record_id
"""

from infrastructure.idempotency.factory import create_dedupe_guard
from infrastructure.idempotency.guard import (
    DedupeBackendError,
    DedupeDecision,
    DedupeGuard,
)
from infrastructure.idempotency.key_builder import DedupeKeyBuilder, payload_hash
from infrastructure.idempotency.memory import InMemoryDedupeGuard

__all__ = [
    "DedupeBackendError",
    "DedupeDecision",
    "DedupeGuard",
    "DedupeKeyBuilder",
    "InMemoryDedupeGuard",
    "create_dedupe_guard",
    "payload_hash",
]
