"""Notification dispatcher with multi-channel fan-out.

Centralized notification delivery that:
- Collapses duplicate events per recipient through the dedupe guard
- Persists one record per recipient before any delivery is attempted
- Resolves the recipient's channel plan (opt-outs, quiet hours, priority)
- Attempts the real-time channel first when the recipient is connected
- Runs provider channels (SMS, email) in the background and records their
  outcome when they finish
- Reports every channel outcome as data; only validation errors and store
  outages are raised

Usage Example:
    from infrastructure.notifications import NotificationDispatcher

    dispatcher = NotificationDispatcher(
        store=store,
        dedupe_guard=guard,
        resolver=resolver,
        presence=presence,
        channels={"realtime": realtime, "sms": sms, "email": email},
        directory=directory,
    )

    result = dispatcher.dispatch(
        {
            "category": "bid_outbid",
            "recipients": ["user-1"],
            "payload": {"auction_id": "a-9"},
            "source_event_id": "bid-42",
        }
    )
    for recipient in result.recipients:
        logger.info("dispatched", record_id=recipient.record_id)
"""

import contextvars
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

from pydantic import ValidationError

from infrastructure.idempotency import DedupeGuard, DedupeKeyBuilder
from infrastructure.logging import bind_request_context, get_module_logger
from infrastructure.notifications.categories import CategoryPolicy, CategoryRegistry
from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.directory import RecipientDirectory
from infrastructure.notifications.errors import (
    ChannelDeliveryFailure,
    NotificationError,
    NotificationValidationError,
    RecordNotFound,
    StoreUnavailable,
)
from infrastructure.notifications.models import (
    REALTIME_CHANNEL,
    CostTier,
    DeliveryConstraints,
    DeliveryOutcome,
    DeliveryStatus,
    DispatchResult,
    NotificationPriority,
    NotificationRecord,
    NotificationRequest,
    OutboundMessage,
    Recipient,
    RecipientDispatch,
    ResolvedPreference,
)
from infrastructure.notifications.preferences import PreferenceResolver
from infrastructure.notifications.presence import PresenceTracker
from infrastructure.notifications.store import NotificationStore

logger = get_module_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """Fan-out engine for notification requests.

    All collaborators are injected; nothing is looked up from module state.

    Attributes:
        channels: Channel name -> NotificationChannel
        dedupe_window_seconds: Lifetime of a dedupe reservation
        realtime_timeout_seconds: Hard bound on synchronous deliveries
        skip_costly_when_live: Skip HIGH cost channels once the real-time
            channel delivered, unless the category guarantees delivery
        delivery_lease_seconds: Claim lease on a (record, channel) delivery
    """

    def __init__(
        self,
        store: NotificationStore,
        dedupe_guard: DedupeGuard,
        resolver: PreferenceResolver,
        presence: PresenceTracker,
        channels: Mapping[str, NotificationChannel],
        directory: RecipientDirectory,
        registry: Optional[CategoryRegistry] = None,
        key_builder: Optional[DedupeKeyBuilder] = None,
        dedupe_window_seconds: int = 300,
        realtime_timeout_seconds: float = 3.0,
        max_workers: int = 8,
        skip_costly_when_live: bool = True,
        delivery_lease_seconds: int = 120,
        clock: Callable[[], datetime] = _utcnow,
        instance_id: Optional[str] = None,
    ):
        self._store = store
        self._guard = dedupe_guard
        self._resolver = resolver
        self._presence = presence
        self._channels: Dict[str, NotificationChannel] = dict(channels)
        self._directory = directory
        self._registry = registry or CategoryRegistry()
        self._key_builder = key_builder or DedupeKeyBuilder()
        self.dedupe_window_seconds = dedupe_window_seconds
        self.realtime_timeout_seconds = realtime_timeout_seconds
        self.skip_costly_when_live = skip_costly_when_live
        self.delivery_lease_seconds = delivery_lease_seconds
        self._clock = clock
        self._instance_id = instance_id or f"dispatcher-{uuid.uuid4().hex[:8]}"

        # Background provider calls never queue ahead of synchronous ones
        self._sync_executor = ThreadPoolExecutor(
            max_workers=max(2, max_workers // 2),
            thread_name_prefix="notification-sync",
        )
        self._background_executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="notification-delivery",
        )
        self._in_flight: Set[Future] = set()
        self._in_flight_lock = threading.Lock()
        self._shutdown = False

        logger.info(
            "initialized_notification_dispatcher",
            channels=list(self._channels.keys()),
            instance_id=self._instance_id,
            dedupe_window_seconds=dedupe_window_seconds,
            realtime_timeout_seconds=realtime_timeout_seconds,
        )

    @property
    def channels(self) -> Dict[str, NotificationChannel]:
        return dict(self._channels)

    @property
    def instance_id(self) -> str:
        return self._instance_id

    def dispatch(
        self,
        request: Union[NotificationRequest, Mapping[str, Any]],
        on_created: Optional[Callable[[NotificationRecord], None]] = None,
    ) -> DispatchResult:
        """Persist and deliver a notification to every recipient.

        Process, per recipient:
        1. Reserve (dedupe key, recipient) with the dedupe guard; a live
           reservation reuses the existing record
        2. Create the record (or reuse it) in the store
        3. Resolve the channel plan and mark every planned channel pending
        4. Attempt each channel in order; channels already final are not
           attempted again

        Args:
            request: NotificationRequest or a dict that validates into one
            on_created: Called with each record as soon as it is written,
                before delivery; still called for records written before a
                later recipient raised

        Returns:
            DispatchResult with one RecipientDispatch per recipient

        Raises:
            NotificationValidationError: Malformed request or unknown category
            StoreUnavailable: The store could not persist a record
        """
        if self._shutdown:
            raise NotificationError("Dispatcher is shut down")

        request = self._validate(request)
        policy = self._registry.get(request.category)
        priority = request.priority or policy.default_priority
        dedupe_key = request.dedupe_key or self._key_builder.for_request(
            request.category,
            request.recipients,
            payload=request.payload,
            source_event_id=request.source_event_id,
        )

        correlation_id = (
            request.metadata.get("correlation_id") or request.source_event_id
        )
        with bind_request_context(
            correlation_id=correlation_id, category=request.category
        ):
            result = DispatchResult(
                category=request.category, priority=priority, dedupe_key=dedupe_key
            )
            for recipient_id in request.recipients:
                result.recipients.append(
                    self._dispatch_recipient(
                        request, policy, priority, dedupe_key, recipient_id, on_created
                    )
                )

            logger.info(
                "notification_dispatched",
                dedupe_key=dedupe_key,
                priority=priority.value,
                recipient_count=len(result.recipients),
                duplicate_count=sum(1 for r in result.recipients if r.duplicate),
            )
        return result

    def redeliver(self, record_id: str, channel_name: str) -> DeliveryOutcome:
        """Drive one pending channel of an existing record to a final status.

        Used by reconciliation after it claimed the delivery. Runs inline,
        including for asynchronous channels.

        Raises:
            RecordNotFound: If the record no longer exists
        """
        record = self._store.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)

        current = record.delivery_status.get(channel_name)
        if current is not None and current.is_terminal:
            return DeliveryOutcome(status=current, attempted=False)

        channel = self._channels.get(channel_name)
        if channel is None:
            outcome = DeliveryOutcome.failed(
                f"Channel {channel_name} is not registered",
                error_code="CHANNEL_NOT_REGISTERED",
            )
            self._finalize(record.id, channel_name, outcome)
            return outcome

        policy = self._registry.get(record.category)
        resolved = self._resolver.resolve(
            record.recipient_id, record.category, record.priority
        )
        if channel_name in resolved.opted_out:
            outcome = DeliveryOutcome.skipped(
                "Recipient opted out of the channel", error_code="OPTED_OUT"
            )
        else:
            live_delivered = (
                record.delivery_status.get(REALTIME_CHANNEL) == DeliveryStatus.DELIVERED
            )
            outcome = self._precheck(channel, resolved, policy, live_delivered)
        if outcome is None:
            recipient = self._lookup(record.recipient_id)
            message = self._render(record, policy)
            constraints = self._constraints(record, channel, resolved.priority)
            if channel.capabilities.synchronous:
                outcome = self._deliver_with_timeout(
                    channel, recipient, message, constraints
                )
            else:
                outcome = self._safe_deliver(channel, recipient, message, constraints)

        self._finalize(record.id, channel_name, outcome)
        return outcome

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for background deliveries submitted so far.

        Returns:
            True if every background delivery finished within ``timeout``
        """
        with self._in_flight_lock:
            pending = list(self._in_flight)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def health_check(self) -> Dict[str, bool]:
        """Check every registered channel.

        Returns:
            Channel name -> healthy
        """
        health: Dict[str, bool] = {}
        for name, channel in self._channels.items():
            try:
                result = channel.health_check()
                health[name] = result.is_success
                if not result.is_success:
                    logger.warning(
                        "channel_unhealthy",
                        channel=name,
                        error=result.message,
                        error_code=result.error_code,
                    )
            except Exception as e:
                logger.exception(
                    "channel_health_check_failed", channel=name, error=str(e)
                )
                health[name] = False
        return health

    def shutdown(self, wait_for_deliveries: bool = True) -> None:
        """Stop accepting dispatches and stop the worker pools."""
        self._shutdown = True
        self._sync_executor.shutdown(wait=wait_for_deliveries)
        self._background_executor.shutdown(wait=wait_for_deliveries)
        logger.info("notification_dispatcher_shutdown", instance_id=self._instance_id)

    # ------------------------------------------------------------------
    # Per recipient flow
    # ------------------------------------------------------------------

    def _validate(
        self, request: Union[NotificationRequest, Mapping[str, Any]]
    ) -> NotificationRequest:
        if isinstance(request, NotificationRequest):
            return request
        try:
            return NotificationRequest.model_validate(request)
        except ValidationError as e:
            logger.warning("notification_request_invalid", error=str(e))
            raise NotificationValidationError(str(e)) from e

    def _dispatch_recipient(
        self,
        request: NotificationRequest,
        policy: CategoryPolicy,
        priority: NotificationPriority,
        dedupe_key: str,
        recipient_id: str,
        on_created: Optional[Callable[[NotificationRecord], None]] = None,
    ) -> RecipientDispatch:
        candidate_id = str(uuid.uuid4())
        decision = self._guard.check_and_reserve(
            dedupe_key, recipient_id, self.dedupe_window_seconds, candidate_id
        )

        record: Optional[NotificationRecord] = None
        if not decision.is_new:
            record = self._store.get(decision.existing_record_id)
            if record is None:
                # Reserved by another dispatch that has not persisted yet;
                # creating under the reserved id converges on one record.
                candidate_id = decision.existing_record_id
            else:
                logger.info(
                    "notification_duplicate_suppressed",
                    record_id=record.id,
                    recipient_id=recipient_id,
                    dedupe_key=dedupe_key,
                )

        created = record is None
        if created:
            record = self._create_record(
                request,
                priority,
                dedupe_key,
                recipient_id,
                candidate_id,
                release_on_failure=decision.is_new and decision.determined,
            )
            if on_created is not None:
                on_created(record)

        # A reused record keeps the priority it was stored with
        per_channel = self._deliver_all(record, policy, record.priority)
        return RecipientDispatch(
            recipient_id=recipient_id,
            record_id=record.id,
            duplicate=not decision.is_new,
            created=created,
            dedupe_determined=decision.determined,
            per_channel=per_channel,
        )

    def _create_record(
        self,
        request: NotificationRequest,
        priority: NotificationPriority,
        dedupe_key: str,
        recipient_id: str,
        record_id: str,
        release_on_failure: bool,
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=record_id,
            recipient_id=recipient_id,
            category=request.category,
            priority=priority,
            payload=request.payload,
            dedupe_key=dedupe_key,
            title=request.title,
            body=request.body,
            metadata=request.metadata,
            created_at=self._clock(),
        )
        try:
            return self._store.create(record)
        except StoreUnavailable as e:
            logger.error(
                "notification_record_create_failed",
                record_id=record_id,
                recipient_id=recipient_id,
                error=str(e),
            )
            if release_on_failure:
                self._guard.release(dedupe_key, recipient_id, record_id)
            raise

    def _deliver_all(
        self,
        record: NotificationRecord,
        policy: CategoryPolicy,
        priority: NotificationPriority,
    ) -> Dict[str, DeliveryOutcome]:
        resolved = self._resolver.resolve(
            record.recipient_id, record.category, priority
        )
        if resolved.opted_out:
            logger.info(
                "channels_opted_out",
                record_id=record.id,
                recipient_id=record.recipient_id,
                channels=resolved.opted_out,
            )

        channels = self._order(resolved.channels, record.recipient_id)
        record = self._store.set_pending(record.id, channels)
        recipient = self._lookup(record.recipient_id)
        message = self._render(record, policy)

        outcomes: Dict[str, DeliveryOutcome] = {}
        live_delivered = (
            record.delivery_status.get(REALTIME_CHANNEL) == DeliveryStatus.DELIVERED
        )
        for name in channels:
            current = record.delivery_status.get(name)
            if current is not None and current.is_terminal:
                outcomes[name] = DeliveryOutcome(status=current, attempted=False)
            else:
                outcomes[name] = self._deliver_channel(
                    record,
                    name,
                    recipient,
                    message,
                    resolved,
                    policy,
                    live_delivered,
                )
            if (
                name == REALTIME_CHANNEL
                and outcomes[name].status == DeliveryStatus.DELIVERED
            ):
                live_delivered = True
        return outcomes

    def _order(self, channels: List[str], recipient_id: str) -> List[str]:
        ordered = []
        for name in channels:
            if name not in self._channels:
                logger.warning(
                    "channel_not_registered", channel=name, recipient_id=recipient_id
                )
                continue
            ordered.append(name)
        if REALTIME_CHANNEL in ordered and self._presence.is_present(recipient_id):
            ordered.remove(REALTIME_CHANNEL)
            ordered.insert(0, REALTIME_CHANNEL)
        return ordered

    def _deliver_channel(
        self,
        record: NotificationRecord,
        name: str,
        recipient: Recipient,
        message: OutboundMessage,
        resolved: ResolvedPreference,
        policy: CategoryPolicy,
        live_delivered: bool,
    ) -> DeliveryOutcome:
        channel = self._channels[name]
        # One claim owner per attempt, so a duplicate dispatch handled by
        # this same instance cannot take over an in-flight delivery
        owner = f"{self._instance_id}:{uuid.uuid4().hex[:8]}"
        if not self._store.claim_delivery(
            record.id, name, owner, self.delivery_lease_seconds
        ):
            return DeliveryOutcome.pending(
                "Delivery in progress elsewhere", attempted=False
            )

        skip = self._precheck(channel, resolved, policy, live_delivered)
        if skip is not None:
            self._finalize(record.id, name, skip)
            return skip

        constraints = self._constraints(record, channel, resolved.priority)
        if channel.capabilities.synchronous:
            outcome = self._deliver_with_timeout(
                channel, recipient, message, constraints
            )
            self._finalize(record.id, name, outcome)
            return outcome

        self._submit_background(
            record.id, name, channel, recipient, message, constraints
        )
        return DeliveryOutcome.pending("Queued for background delivery")

    def _precheck(
        self,
        channel: NotificationChannel,
        resolved: ResolvedPreference,
        policy: CategoryPolicy,
        live_delivered: bool,
    ) -> Optional[DeliveryOutcome]:
        capabilities = channel.capabilities
        if (
            resolved.in_quiet_hours
            and capabilities.respects_quiet_hours
            and resolved.priority != NotificationPriority.CRITICAL
        ):
            return DeliveryOutcome.skipped(
                "Suppressed during quiet hours", error_code="QUIET_HOURS"
            )
        if (
            live_delivered
            and self.skip_costly_when_live
            and not policy.guaranteed_delivery
            and capabilities.cost_tier == CostTier.HIGH
        ):
            return DeliveryOutcome.skipped(
                "Recipient already reached in real time", error_code="COST_SKIPPED"
            )
        return None

    # ------------------------------------------------------------------
    # Delivery execution
    # ------------------------------------------------------------------

    def _deliver_with_timeout(
        self,
        channel: NotificationChannel,
        recipient: Recipient,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> DeliveryOutcome:
        future = self._submit(
            self._sync_executor,
            self._safe_deliver,
            channel,
            recipient,
            message,
            constraints,
        )
        try:
            return future.result(timeout=self.realtime_timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "channel_delivery_timed_out",
                channel=channel.channel_name,
                record_id=message.record_id,
                timeout_seconds=self.realtime_timeout_seconds,
            )
            return DeliveryOutcome.failed(
                f"Timed out after {self.realtime_timeout_seconds}s",
                error_code="TIMEOUT",
            )

    def _submit_background(
        self,
        record_id: str,
        name: str,
        channel: NotificationChannel,
        recipient: Recipient,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> None:
        future = self._submit(
            self._background_executor,
            self._deliver_in_background,
            record_id,
            name,
            channel,
            recipient,
            message,
            constraints,
        )
        with self._in_flight_lock:
            self._in_flight.add(future)
        future.add_done_callback(self._forget_future)

    def _forget_future(self, future: Future) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(future)

    def _deliver_in_background(
        self,
        record_id: str,
        name: str,
        channel: NotificationChannel,
        recipient: Recipient,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> None:
        outcome = self._safe_deliver(channel, recipient, message, constraints)
        self._finalize(record_id, name, outcome)

    def _safe_deliver(
        self,
        channel: NotificationChannel,
        recipient: Recipient,
        message: OutboundMessage,
        constraints: DeliveryConstraints,
    ) -> DeliveryOutcome:
        name = channel.channel_name
        try:
            outcome = channel.deliver(recipient, message, constraints)
        except ChannelDeliveryFailure as e:
            outcome = DeliveryOutcome.failed(
                str(e), error_code=e.error_code or "DELIVERY_FAILED"
            )
        except Exception as e:
            logger.exception(
                "channel_delivery_error",
                channel=name,
                record_id=message.record_id,
                error=str(e),
            )
            outcome = DeliveryOutcome.failed(
                f"Unexpected error: {e}", error_code="UNEXPECTED_ERROR"
            )

        if outcome.status == DeliveryStatus.PENDING:
            outcome = DeliveryOutcome.failed(
                "Channel reported no final status", error_code="NO_FINAL_STATUS"
            )

        if outcome.status == DeliveryStatus.FAILED:
            logger.warning(
                "channel_delivery_failed",
                channel=name,
                record_id=message.record_id,
                recipient_id=recipient.recipient_id,
                error=outcome.error,
                error_code=outcome.error_code,
            )
        else:
            logger.info(
                "channel_delivery_completed",
                channel=name,
                record_id=message.record_id,
                recipient_id=recipient.recipient_id,
                status=outcome.status.value,
            )
        return outcome

    def _finalize(
        self, record_id: str, channel_name: str, outcome: DeliveryOutcome
    ) -> None:
        # A failed write leaves the channel pending for reconciliation
        try:
            applied = self._store.update_delivery_status(
                record_id, channel_name, outcome.status
            )
        except (StoreUnavailable, RecordNotFound) as e:
            logger.error(
                "delivery_status_write_failed",
                record_id=record_id,
                channel=channel_name,
                status=outcome.status.value,
                error=str(e),
            )
            return
        if not applied:
            logger.debug(
                "delivery_status_not_applied",
                record_id=record_id,
                channel=channel_name,
                status=outcome.status.value,
            )

    def _submit(self, executor: ThreadPoolExecutor, fn, *args) -> Future:
        # Run under a copy of the caller's context so bound log fields follow
        ctx = contextvars.copy_context()
        return executor.submit(ctx.run, fn, *args)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lookup(self, recipient_id: str) -> Recipient:
        recipient = self._directory.lookup(recipient_id)
        if recipient is None:
            logger.warning("recipient_not_in_directory", recipient_id=recipient_id)
            return Recipient(recipient_id=recipient_id)
        return recipient

    def _render(
        self, record: NotificationRecord, policy: CategoryPolicy
    ) -> OutboundMessage:
        return OutboundMessage(
            record_id=record.id,
            category=record.category,
            title=record.title or policy.name.replace("_", " ").capitalize(),
            body=record.body or "",
            payload=record.payload,
            ui_event=policy.ui_event,
            created_at=record.created_at,
        )

    def _constraints(
        self,
        record: NotificationRecord,
        channel: NotificationChannel,
        priority: NotificationPriority,
    ) -> DeliveryConstraints:
        return DeliveryConstraints(
            priority=priority,
            timeout_seconds=(
                self.realtime_timeout_seconds
                if channel.capabilities.synchronous
                else None
            ),
            reference=f"{record.id}:{channel.channel_name}",
        )
