"""Dedupe key builder for consistent key generation."""

import hashlib
import json
from typing import Any, Iterable, Optional


class DedupeKeyBuilder:
    """Build deterministic dedupe keys for notification events.

    Keys are namespaced and hashed so arbitrary event ids and payloads map
    onto short, fixed-size keys.

    Example:
        >>> builder = DedupeKeyBuilder(namespace="notifications")
        >>> builder.build("event", category="bid_outbid", source_event_id="bid-42")
        'notifications:event:a1b2c3d4e5f6a7b8'
    """

    def __init__(self, namespace: str = "notifications"):
        """Initialize key builder.

        Args:
            namespace: Namespace for key isolation
        """
        self.namespace = namespace

    def build(self, operation: str, **components: Any) -> str:
        """Build a key from components.

        Args:
            operation: Key kind (e.g., "event", "content")
            **components: Key components

        Returns:
            Dedupe key string
        """
        sorted_components = sorted(components.items())

        key_parts = [self.namespace, operation]
        key_parts.extend(f"{k}={v}" for k, v in sorted_components)
        key_string = "|".join(str(part) for part in key_parts)

        key_hash = hashlib.sha256(key_string.encode()).hexdigest()[:16]

        return f"{self.namespace}:{operation}:{key_hash}"

    def for_request(
        self,
        category: str,
        recipients: Iterable[str],
        payload: Optional[dict] = None,
        source_event_id: Optional[str] = None,
    ) -> str:
        """Derive the key for a notification request.

        An upstream event id identifies the logical event on its own. Without
        one, the key covers the category, the recipient set and a hash of the
        payload, so re-submitting the same content collapses.
        """
        if source_event_id:
            return self.build(
                "event", category=category, source_event_id=source_event_id
            )

        return self.build(
            "content",
            category=category,
            recipients=",".join(sorted(set(recipients))),
            payload_hash=payload_hash(payload or {}),
        )


def payload_hash(payload: dict) -> str:
    """Stable hash of a JSON-like payload (key order does not matter)."""
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()
