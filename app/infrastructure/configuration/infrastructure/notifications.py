"""Notification engine settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class NotificationSettings(InfrastructureSettings):
    """Fan-out engine configuration.

    Environment Variables:
        NOTIFICATIONS_DEDUPE_WINDOW_SECONDS: Sliding dedupe window (default: 300s)
        NOTIFICATIONS_DEDUPE_BACKEND: 'memory' or 'redis' (default: memory)
        NOTIFICATIONS_REALTIME_TIMEOUT_SECONDS: Hard timeout for the synchronous
            real-time delivery attempt (default: 3s)
        NOTIFICATIONS_MAX_WORKERS: Background delivery pool size (default: 8)
        NOTIFICATIONS_DEFAULT_TIMEZONE: Timezone used for quiet hours when the
            recipient has none stored (default: UTC)
        NOTIFICATIONS_PREFERENCE_CACHE_TTL_SECONDS: Per-recipient preference
            cache TTL (default: 30s)
        NOTIFICATIONS_SKIP_COSTLY_WHEN_LIVE: Skip high cost channels once the
            real-time channel delivered (default: True)
        NOTIFICATIONS_DELIVERY_LEASE_SECONDS: Claim lease on a pending
            (record, channel) delivery (default: 120s)
        NOTIFICATIONS_PENDING_MAX_AGE_SECONDS: Age after which reconciliation
            re-drives a pending channel (default: 600s)
        NOTIFICATIONS_RECONCILE_BATCH_SIZE: Entries per reconciliation batch
            (default: 50)
        NOTIFICATIONS_RETENTION_DAYS: Read records older than this are removed
            by cleanup (default: 30)
        NOTIFICATIONS_PRESENCE_TTL_SECONDS: Presence entries expire without a
            heartbeat (default: 90s)
        NOTIFICATIONS_REALTIME_BACKEND: 'memory' or 'redis' (default: memory)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        window = settings.notifications.dedupe_window_seconds
        ```
    """

    dedupe_window_seconds: int = Field(
        default=300,
        alias="NOTIFICATIONS_DEDUPE_WINDOW_SECONDS",
        description="Sliding window during which identical dedupe keys collapse",
    )
    dedupe_backend: str = Field(
        default="memory",
        alias="NOTIFICATIONS_DEDUPE_BACKEND",
        description="Dedupe reservation backend: 'memory' or 'redis'",
    )
    realtime_timeout_seconds: float = Field(
        default=3.0,
        alias="NOTIFICATIONS_REALTIME_TIMEOUT_SECONDS",
        description="Hard timeout for synchronous channel delivery",
    )
    max_workers: int = Field(
        default=8,
        alias="NOTIFICATIONS_MAX_WORKERS",
        description="Thread pool size for background channel deliveries",
    )
    default_timezone: str = Field(
        default="UTC",
        alias="NOTIFICATIONS_DEFAULT_TIMEZONE",
        description="Fallback timezone for quiet hours evaluation",
    )
    preference_cache_ttl_seconds: int = Field(
        default=30,
        alias="NOTIFICATIONS_PREFERENCE_CACHE_TTL_SECONDS",
        description="TTL of the per-recipient preference cache",
    )
    skip_costly_when_live: bool = Field(
        default=True,
        alias="NOTIFICATIONS_SKIP_COSTLY_WHEN_LIVE",
        description="Skip high cost channels once real-time delivery succeeded",
    )
    delivery_lease_seconds: int = Field(
        default=120,
        alias="NOTIFICATIONS_DELIVERY_LEASE_SECONDS",
        description="Claim lease held while a channel delivery is in flight",
    )
    pending_max_age_seconds: int = Field(
        default=600,
        alias="NOTIFICATIONS_PENDING_MAX_AGE_SECONDS",
        description="Pending entries older than this are reconciled",
    )
    reconcile_batch_size: int = Field(
        default=50,
        alias="NOTIFICATIONS_RECONCILE_BATCH_SIZE",
        description="Number of stale pending deliveries handled per batch",
    )
    retention_days: int = Field(
        default=30,
        alias="NOTIFICATIONS_RETENTION_DAYS",
        description="Retention of read notifications (days)",
    )
    presence_ttl_seconds: int = Field(
        default=90,
        alias="NOTIFICATIONS_PRESENCE_TTL_SECONDS",
        description="Connections without a heartbeat for this long are dropped",
    )
    realtime_backend: str = Field(
        default="memory",
        alias="NOTIFICATIONS_REALTIME_BACKEND",
        description="Real-time transport: 'memory' (in-process) or 'redis' pub/sub",
    )
