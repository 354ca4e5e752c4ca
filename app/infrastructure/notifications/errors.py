"""Notification engine exceptions.

Only NotificationValidationError and StoreUnavailable surface from
``dispatch``; channel level problems are reported as DeliveryOutcome data.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification engine errors."""

    pass


class NotificationValidationError(NotificationError):
    """Malformed request, unknown category or invalid cursor. Not retried."""

    pass


class StoreUnavailable(NotificationError):
    """The notification store could not be reached.

    Fatal for the dispatch that hit it; callers retry the whole dispatch
    with backoff.
    """

    pass


class RecordNotFound(NotificationError):
    """No notification record with the given id."""

    def __init__(self, record_id: str):
        super().__init__(f"Notification record not found: {record_id}")
        self.record_id = record_id


class ChannelDeliveryFailure(NotificationError):
    """A delivery attempt failed inside a channel adapter.

    Attributes:
        error_code: Machine readable reason (e.g. HTTP_503)
        retryable: True when another attempt may succeed
        retry_after: Seconds the provider asked us to wait, if any
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        retryable: bool = False,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.retryable = retryable
        self.retry_after = retry_after
