"""Dedupe guard factory."""

from infrastructure.configuration import Settings
from infrastructure.idempotency.guard import DedupeGuard
from infrastructure.idempotency.memory import InMemoryDedupeGuard
from infrastructure.logging import get_module_logger

logger = get_module_logger()


def create_dedupe_guard(settings: Settings) -> DedupeGuard:
    """Build the guard selected by ``NOTIFICATIONS_DEDUPE_BACKEND``.

    Returns:
        RedisDedupeGuard for "redis" (shared across instances), otherwise
        an InMemoryDedupeGuard.
    """
    backend = settings.notifications.dedupe_backend
    if backend == "redis":
        # Import here so the in-memory backend does not need a Redis server
        from infrastructure.idempotency.redis_guard import RedisDedupeGuard
        from integrations.redis_client import get_redis_client

        client = get_redis_client(settings.redis)
        return RedisDedupeGuard(client, key_prefix=settings.redis.REDIS_KEY_PREFIX)

    if backend != "memory":
        logger.warning("unknown_dedupe_backend", backend=backend, fallback="memory")
    return InMemoryDedupeGuard()
