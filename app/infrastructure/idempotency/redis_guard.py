"""Redis-backed dedupe guard shared by every service instance."""

from redis import Redis, RedisError  # type: ignore

from infrastructure.idempotency.guard import (
    DedupeBackendError,
    DedupeDecision,
    DedupeGuard,
)
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from integrations.redis_client import health_check as redis_health_check

logger = get_module_logger()

# Delete the key only while it still holds the given record id
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisDedupeGuard(DedupeGuard):
    """Reservations stored as ``SET key record_id NX EX window``.

    The conditional SET is the atomic insert-if-absent; a losing writer
    reads the holder's record id and pushes the key's expiry out by another
    window. Redis expiry implements the window.

    Args:
        client: Redis client (decode_responses=True)
        key_prefix: Prefix applied to every reservation key
    """

    def __init__(self, client: Redis, key_prefix: str = "notif"):
        self._client = client
        self._key_prefix = key_prefix
        logger.info("initialized_dedupe_guard", backend="redis")

    def _key(self, dedupe_key: str, recipient_id: str) -> str:
        return f"{self._key_prefix}:dedupe:{dedupe_key}:{recipient_id}"

    def _reserve(
        self,
        dedupe_key: str,
        recipient_id: str,
        window_seconds: int,
        candidate_record_id: str,
    ) -> DedupeDecision:
        key = self._key(dedupe_key, recipient_id)
        try:
            # A reservation can expire between a failed SET and the GET; one
            # more round settles it.
            for _ in range(2):
                if self._client.set(
                    key, candidate_record_id, nx=True, ex=window_seconds
                ):
                    return DedupeDecision.new()
                holder = self._client.get(key)
                if holder is not None:
                    self._client.expire(key, window_seconds)
                    return DedupeDecision.duplicate(holder)
        except RedisError as e:
            raise DedupeBackendError(str(e)) from e

        raise DedupeBackendError(f"Reservation for {key} kept changing")

    def _release(self, dedupe_key: str, recipient_id: str, record_id: str) -> None:
        key = self._key(dedupe_key, recipient_id)
        try:
            self._client.eval(_RELEASE_SCRIPT, 1, key, record_id)
        except RedisError as e:
            raise DedupeBackendError(str(e)) from e

    def health_check(self) -> OperationResult:
        return redis_health_check(self._client)
