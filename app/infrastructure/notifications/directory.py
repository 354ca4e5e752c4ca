"""Recipient directory: recipient id -> contact details."""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from infrastructure.notifications.models import Recipient


class RecipientDirectory(ABC):
    """Lookup of contact details used by the delivery channels."""

    @abstractmethod
    def lookup(self, recipient_id: str) -> Optional[Recipient]:
        """Return the recipient's contact details, or None if unknown."""
        pass


class InMemoryRecipientDirectory(RecipientDirectory):
    """Dict backed directory, populated by the caller."""

    def __init__(self, recipients: Iterable[Recipient] = ()):
        self._recipients: Dict[str, Recipient] = {}
        self._lock = threading.Lock()
        for recipient in recipients:
            self.register(recipient)

    def register(self, recipient: Recipient) -> None:
        with self._lock:
            self._recipients[recipient.recipient_id] = recipient

    def remove(self, recipient_id: str) -> None:
        with self._lock:
            self._recipients.pop(recipient_id, None)

    def lookup(self, recipient_id: str) -> Optional[Recipient]:
        with self._lock:
            return self._recipients.get(recipient_id)
