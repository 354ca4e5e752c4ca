"""Redis integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class RedisSettings(IntegrationSettings):
    """Redis connection configuration.

    Redis backs the shared dedupe reservations (multi-instance deployments)
    and the real-time pub/sub transport.

    Environment Variables:
        REDIS_HOST: Redis endpoint (default: localhost)
        REDIS_PORT: Redis port (default: 6379)
        REDIS_DB: Database index (default: 0)
        REDIS_SOCKET_TIMEOUT_SECONDS: Socket/connect timeout (default: 5s)
        REDIS_KEY_PREFIX: Prefix for every key and topic (default: "notif")
    """

    REDIS_HOST: str = Field(default="localhost", alias="REDIS_HOST")
    REDIS_PORT: int = Field(default=6379, alias="REDIS_PORT")
    REDIS_DB: int = Field(default=0, alias="REDIS_DB")
    REDIS_SOCKET_TIMEOUT_SECONDS: float = Field(
        default=5.0, alias="REDIS_SOCKET_TIMEOUT_SECONDS"
    )
    REDIS_KEY_PREFIX: str = Field(default="notif", alias="REDIS_KEY_PREFIX")
