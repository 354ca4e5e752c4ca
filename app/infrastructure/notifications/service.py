"""Notification service for dependency injection.

Provides a class-based interface to the notification engine: builds the
dispatcher and its collaborators from Settings and exposes the operations
callers and the UI read surface need.
"""

import time
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Union,
)

from infrastructure.idempotency import DedupeGuard, create_dedupe_guard
from infrastructure.logging import get_module_logger
from infrastructure.notifications.categories import CategoryRegistry
from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.channels.email import EmailChannel
from infrastructure.notifications.channels.realtime import (
    InMemoryRealtimePublisher,
    RealtimeChannel,
    RealtimePublisher,
)
from infrastructure.notifications.channels.sms import SMSChannel
from infrastructure.notifications.directory import (
    InMemoryRecipientDirectory,
    RecipientDirectory,
)
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.errors import (
    NotificationValidationError,
    StoreUnavailable,
)
from infrastructure.notifications.models import (
    EMAIL_CHANNEL,
    REALTIME_CHANNEL,
    SMS_CHANNEL,
    DispatchResult,
    NotificationPage,
    NotificationRecord,
    NotificationRequest,
)
from infrastructure.notifications.preference_service import PreferenceService
from infrastructure.notifications.preferences import (
    InMemoryPreferenceRepository,
    PreferenceRepository,
    PreferenceResolver,
)
from infrastructure.notifications.presence import PresenceTracker
from infrastructure.notifications.reconciliation import ReconciliationWorker
from infrastructure.notifications.store import (
    InMemoryNotificationStore,
    NotificationStore,
)
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import CircuitBreaker
from infrastructure.resilience.retry import RetryPolicy, retry_call
from integrations.notify import NotifyClient

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = get_module_logger()

UNREAD_COUNT_EVENT = "unread_count_changed"


class NotificationService:
    """Class-based notification service.

    Wires the NotificationDispatcher with its store, dedupe guard,
    preference resolver, presence tracker, channels and recipient
    directory. Every collaborator can be injected; anything omitted is
    built from settings.

    Usage:
        # Via the provider
        from infrastructure.services import get_notification_service

        service = get_notification_service()
        result = service.send(
            {
                "category": "new_message",
                "recipients": ["user-1"],
                "payload": {"message_id": "m-7"},
            }
        )

        # Direct instantiation
        from infrastructure.services import get_settings
        from infrastructure.notifications import NotificationService

        service = NotificationService(get_settings())
    """

    def __init__(
        self,
        settings: "Settings",
        store: Optional[NotificationStore] = None,
        dedupe_guard: Optional[DedupeGuard] = None,
        preference_repository: Optional[PreferenceRepository] = None,
        presence: Optional[PresenceTracker] = None,
        channels: Optional[Dict[str, NotificationChannel]] = None,
        directory: Optional[RecipientDirectory] = None,
        publisher: Optional[RealtimePublisher] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        registry: Optional[CategoryRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize notification service.

        Args:
            settings: Settings instance (required, passed from provider).
            store: Notification store; in-memory if omitted.
            dedupe_guard: Dedupe guard; selected by NOTIFICATIONS_DEDUPE_BACKEND
                if omitted.
            preference_repository: Preference persistence; in-memory if omitted.
            presence: Presence tracker fed by the real-time transport.
            channels: Channel name -> NotificationChannel. If not provided,
                creates the real-time, email and SMS channels.
            directory: Recipient directory; in-memory if omitted.
            publisher: Real-time transport; selected by
                NOTIFICATIONS_REALTIME_BACKEND if omitted.
            dispatcher: Pre-configured dispatcher. When given, ``store``,
                ``presence`` and ``channels`` should be the ones it uses.
            registry: Category policies.
            sleep: Callable used between retries.
        """
        self._settings = settings
        self._sleep = sleep
        config = settings.notifications

        self._registry = registry or CategoryRegistry()
        self._store = store or InMemoryNotificationStore()
        self._presence = presence or PresenceTracker(
            ttl_seconds=config.presence_ttl_seconds
        )
        self._retry_policy = RetryPolicy.from_settings(settings.retry)

        repository = preference_repository or InMemoryPreferenceRepository()
        self._resolver = PreferenceResolver(
            repository,
            registry=self._registry,
            default_timezone=config.default_timezone,
            cache_ttl_seconds=config.preference_cache_ttl_seconds,
        )

        self._dedupe_guard = dedupe_guard
        if dispatcher is None:
            if self._dedupe_guard is None:
                self._dedupe_guard = create_dedupe_guard(settings)
            if channels is None:
                channels = self._create_default_channels(publisher)
            dispatcher = NotificationDispatcher(
                store=self._store,
                dedupe_guard=self._dedupe_guard,
                resolver=self._resolver,
                presence=self._presence,
                channels=channels,
                directory=directory or InMemoryRecipientDirectory(),
                registry=self._registry,
                dedupe_window_seconds=config.dedupe_window_seconds,
                realtime_timeout_seconds=config.realtime_timeout_seconds,
                max_workers=config.max_workers,
                skip_costly_when_live=config.skip_costly_when_live,
                delivery_lease_seconds=config.delivery_lease_seconds,
            )
        self._dispatcher = dispatcher

        self._preferences = PreferenceService(
            repository,
            self._resolver,
            registry=self._registry,
            known_channels=list(self._dispatcher.channels.keys()),
        )
        self._reconciler = ReconciliationWorker(
            self._store,
            self._dispatcher,
            pending_max_age_seconds=config.pending_max_age_seconds,
            batch_size=config.reconcile_batch_size,
            lease_seconds=config.delivery_lease_seconds,
        )

    def _create_default_channels(
        self, publisher: Optional[RealtimePublisher]
    ) -> Dict[str, NotificationChannel]:
        if publisher is None:
            publisher = self._create_publisher()

        client = NotifyClient(self._settings.notify)
        sms_cb = CircuitBreaker(
            name="notification_sms", failure_threshold=3, timeout_seconds=60
        )
        email_cb = CircuitBreaker(
            name="notification_email", failure_threshold=3, timeout_seconds=60
        )

        return {
            REALTIME_CHANNEL: RealtimeChannel(publisher, self._presence),
            EMAIL_CHANNEL: EmailChannel(
                client,
                circuit_breaker=email_cb,
                retry_policy=self._retry_policy,
                sleep=self._sleep,
            ),
            SMS_CHANNEL: SMSChannel(
                client,
                circuit_breaker=sms_cb,
                retry_policy=self._retry_policy,
                sleep=self._sleep,
            ),
        }

    def _create_publisher(self) -> RealtimePublisher:
        backend = self._settings.notifications.realtime_backend
        if backend == "redis":
            # Import here so the in-process backend does not need a Redis server
            from integrations.redis_client import RedisPublisher, get_redis_client

            client = get_redis_client(self._settings.redis)
            return RedisPublisher(
                client, topic_prefix=self._settings.redis.REDIS_KEY_PREFIX
            )
        if backend != "memory":
            logger.warning(
                "unknown_realtime_backend", backend=backend, fallback="memory"
            )
        return InMemoryRealtimePublisher()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def send(
        self, request: Union[NotificationRequest, Mapping[str, Any]]
    ) -> DispatchResult:
        """Dispatch a notification, retrying the whole dispatch on store outages.

        Store outages are retried with bounded exponential backoff; the last
        StoreUnavailable propagates once attempts are exhausted. Validation
        errors are never retried.

        Recipients whose record was written by any attempt get an unread
        count event, including when a later attempt sees the record as a
        duplicate or the dispatch finally fails.

        Args:
            request: NotificationRequest or a dict that validates into one

        Returns:
            DispatchResult with one entry per recipient
        """
        created: Dict[str, None] = {}

        def record_created(record: NotificationRecord) -> None:
            created[record.recipient_id] = None

        try:
            return retry_call(
                lambda: self._dispatcher.dispatch(request, on_created=record_created),
                self._retry_policy,
                retry_on=(StoreUnavailable,),
                sleep=self._sleep,
                operation="notification_dispatch",
            )
        finally:
            for recipient_id in created:
                self._publish_unread_count(recipient_id)

    def send_bulk(
        self, requests: Iterable[Union[NotificationRequest, Mapping[str, Any]]]
    ) -> List[OperationResult]:
        """Dispatch several requests independently.

        Returns:
            One OperationResult per request, in order. Successful entries
            carry the DispatchResult in ``data``; a malformed request is a
            permanent error and a store outage a transient one.
        """
        results: List[OperationResult] = []
        for index, request in enumerate(requests):
            try:
                dispatched = self.send(request)
            except NotificationValidationError as e:
                logger.warning("bulk_request_rejected", index=index, error=str(e))
                results.append(
                    OperationResult.permanent_error(
                        str(e), error_code="VALIDATION_ERROR"
                    )
                )
                continue
            except StoreUnavailable as e:
                logger.error(
                    "bulk_request_store_unavailable", index=index, error=str(e)
                )
                results.append(
                    OperationResult.transient_error(
                        str(e), error_code="STORE_UNAVAILABLE"
                    )
                )
                continue
            results.append(
                OperationResult.success(
                    message=f"Dispatched to {len(dispatched.recipients)} recipients",
                    data=dispatched,
                )
            )

        failed = sum(1 for r in results if not r.is_success)
        logger.info("bulk_dispatch_complete", total=len(results), failed=failed)
        return results

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    def mark_read(self, record_id: str) -> NotificationRecord:
        """Mark one record read. Already read records are returned unchanged."""
        record = self._store.mark_read(record_id)
        self._publish_unread_count(record.recipient_id)
        return record

    def mark_all_read(self, recipient_id: str) -> int:
        count = self._store.mark_all_read(recipient_id)
        if count:
            self._publish_unread_count(recipient_id)
        return count

    def count_unread(self, recipient_id: str) -> int:
        return self._store.count_unread(recipient_id)

    def list_notifications(
        self,
        recipient_id: str,
        cursor: Optional[str] = None,
        page_size: int = 20,
        unread_only: bool = False,
        category: Optional[str] = None,
        unread_first: bool = False,
    ) -> NotificationPage:
        return self._store.list_paginated(
            recipient_id,
            cursor=cursor,
            page_size=page_size,
            unread_only=unread_only,
            category=category,
            unread_first=unread_first,
        )

    def get(self, record_id: str) -> Optional[NotificationRecord]:
        return self._store.get(record_id)

    def get_stats(self, recipient_id: str) -> Dict[str, object]:
        return self._store.get_stats(recipient_id)

    def delete(self, record_id: str) -> bool:
        record = self._store.get(record_id)
        deleted = self._store.delete(record_id)
        if deleted and record is not None and not record.is_read:
            self._publish_unread_count(record.recipient_id)
        return deleted

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup(self, days: Optional[int] = None) -> int:
        """Delete read records older than ``days`` (retention setting by default).

        Also drops expired dedupe reservations and stale presence entries.
        """
        if days is None:
            days = self._settings.notifications.retention_days
        deleted = self._store.cleanup_read_older_than(days)
        if self._dedupe_guard is not None:
            self._dedupe_guard.purge_expired()
        self._presence.purge_expired()
        return deleted

    def reconcile(self) -> Dict[str, int]:
        """Run one reconciliation batch over stale pending deliveries."""
        return self._reconciler.process_batch()

    def health_check(self) -> Dict[str, bool]:
        """Channel health plus the store."""
        health = self._dispatcher.health_check()
        health["store"] = self._store.health_check().is_success
        return health

    def shutdown(self, wait_for_deliveries: bool = True) -> None:
        self._dispatcher.shutdown(wait_for_deliveries=wait_for_deliveries)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def dispatcher(self) -> NotificationDispatcher:
        """Access underlying NotificationDispatcher instance."""
        return self._dispatcher

    @property
    def preferences(self) -> PreferenceService:
        return self._preferences

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    @property
    def reconciler(self) -> ReconciliationWorker:
        return self._reconciler

    def _publish_unread_count(self, recipient_id: str) -> None:
        channel = self._dispatcher.channels.get(REALTIME_CHANNEL)
        if not isinstance(channel, RealtimeChannel):
            return
        try:
            event = {
                "event": UNREAD_COUNT_EVENT,
                "count": self._store.count_unread(recipient_id),
            }
            result = channel.publish_event(recipient_id, event)
        except Exception as e:
            logger.warning(
                "unread_count_publish_error", recipient_id=recipient_id, error=str(e)
            )
            return
        if not result.is_success:
            logger.warning(
                "unread_count_publish_failed",
                recipient_id=recipient_id,
                error=result.message,
            )
