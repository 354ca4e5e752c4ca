"""Redis client connection for shared notification state.

Redis backs two concerns:
- dedupe reservations shared across service instances (SET NX EX)
- the real-time pub/sub transport used by the in-app channel

Features:
- Connection pooling keyed by endpoint
- Standardized error handling via OperationResult
- Key prefixing so several deployments can share one instance

Usage:
    from integrations.redis_client import get_redis_client

    client = get_redis_client(settings.redis)
    client.set(prefixed_key(settings.redis, "dedupe", key), record_id, nx=True, ex=300)
"""

import threading
from typing import Dict, Tuple

from redis import ConnectionPool, Redis, RedisError  # type: ignore
from redis.exceptions import ConnectionError, TimeoutError  # type: ignore

from infrastructure.configuration.integrations.redis import RedisSettings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult

logger = get_module_logger()

# Connection pools keyed by (host, port, db), created on first use
_connection_pools: Dict[Tuple[str, int, int], ConnectionPool] = {}
_pool_lock = threading.Lock()


def get_redis_client(settings: RedisSettings) -> Redis:
    """Get a Redis client sharing a pooled connection for the endpoint.

    Args:
        settings: RedisSettings with host, port, db and timeouts

    Returns:
        Redis: Redis client instance with connection pooling
    """
    pool_key = (settings.REDIS_HOST, settings.REDIS_PORT, settings.REDIS_DB)
    with _pool_lock:
        pool = _connection_pools.get(pool_key)
        if pool is None:
            pool = ConnectionPool(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True,
                max_connections=20,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            _connection_pools[pool_key] = pool
            logger.info(
                "redis_connection_pool_created",
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
            )

    return Redis(connection_pool=pool)


def reset_redis_pools() -> None:
    """Disconnect and forget every pool (for testing and shutdown)."""
    with _pool_lock:
        for pool in _connection_pools.values():
            pool.disconnect()
        _connection_pools.clear()
    logger.debug("redis_connection_pools_reset")


def prefixed_key(settings: RedisSettings, *parts: str) -> str:
    """Build a namespaced key, e.g. ``notif:dedupe:<key>``."""
    return ":".join([settings.REDIS_KEY_PREFIX, *parts])


def health_check(client: Redis) -> OperationResult:
    """Ping Redis and classify the outcome.

    Returns:
        OperationResult: SUCCESS when the server answers the ping
    """
    try:
        client.ping()
        return OperationResult.success(message="Redis reachable")
    except (ConnectionError, TimeoutError) as e:
        logger.warning("redis_health_check_failed", error=str(e))
        return OperationResult.transient_error(
            message=f"Redis connection error: {str(e)}",
            error_code="CONNECTION_ERROR",
        )
    except RedisError as e:
        logger.error("redis_health_check_error", error=str(e))
        return OperationResult.permanent_error(
            message=f"Redis error: {str(e)}",
            error_code="REDIS_ERROR",
        )

