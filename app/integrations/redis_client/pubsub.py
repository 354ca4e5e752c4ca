"""Redis pub/sub publisher for real-time notification events."""

import json
from typing import Any, Dict

from redis import Redis, RedisError  # type: ignore
from redis.exceptions import ConnectionError, TimeoutError  # type: ignore

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from integrations.redis_client.client import health_check as redis_health_check

logger = get_module_logger()


class RedisPublisher:
    """Publish JSON events to per-recipient topics.

    ``publish`` reports how many subscribers received the message in
    ``data["receivers"]``.
    """

    def __init__(self, client: Redis, topic_prefix: str = "notif"):
        self._client = client
        self._topic_prefix = topic_prefix

    def topic_for(self, recipient_id: str) -> str:
        return f"{self._topic_prefix}:user:{recipient_id}"

    def publish(self, recipient_id: str, event: Dict[str, Any]) -> OperationResult:
        topic = self.topic_for(recipient_id)
        try:
            receivers = self._client.publish(topic, json.dumps(event, default=str))
        except (ConnectionError, TimeoutError) as e:
            logger.warning("redis_publish_connection_error", topic=topic, error=str(e))
            return OperationResult.transient_error(
                message=f"Connection error publishing to {topic}: {str(e)}",
                error_code="CONNECTION_ERROR",
            )
        except RedisError as e:
            logger.error("redis_publish_error", topic=topic, error=str(e))
            return OperationResult.permanent_error(
                message=f"Error publishing to {topic}: {str(e)}",
                error_code="REDIS_ERROR",
            )

        logger.debug("redis_published", topic=topic, receivers=receivers)
        return OperationResult.success(
            message=f"Published to {topic}", data={"receivers": receivers}
        )

    def health_check(self) -> OperationResult:
        return redis_health_check(self._client)

