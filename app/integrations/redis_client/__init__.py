"""Redis integration: pooled client and pub/sub publisher."""

from integrations.redis_client.client import (
    get_redis_client,
    health_check,
    prefixed_key,
    reset_redis_pools,
)
from integrations.redis_client.pubsub import RedisPublisher

__all__ = [
    "RedisPublisher",
    "get_redis_client",
    "health_check",
    "prefixed_key",
    "reset_redis_pools",
]
