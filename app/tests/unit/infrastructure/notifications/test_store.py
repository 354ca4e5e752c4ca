"""Unit tests for InMemoryNotificationStore."""

from datetime import timedelta

import pytest

from infrastructure.notifications.errors import (
    NotificationValidationError,
    RecordNotFound,
)
from infrastructure.notifications.models import (
    DeliveryStatus,
    NotificationPriority,
    NotificationRecord,
)
from infrastructure.notifications.store import decode_cursor, encode_cursor


@pytest.fixture
def record_factory(fake_clock):
    """Factory for NotificationRecord instances created at offsets from now."""

    def _factory(
        record_id: str,
        recipient_id: str = "user-1",
        category: str = "new_message",
        offset_seconds: int = 0,
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> NotificationRecord:
        return NotificationRecord(
            id=record_id,
            recipient_id=recipient_id,
            category=category,
            priority=priority,
            dedupe_key=f"key-{record_id}",
            created_at=fake_clock.now() + timedelta(seconds=offset_seconds),
        )

    return _factory


@pytest.mark.unit
class TestCreateAndGet:
    def test_create_sets_version(self, store, record_factory):
        stored = store.create(record_factory("r1"))

        assert stored.version == 1
        assert store.get("r1").id == "r1"

    def test_create_with_taken_id_returns_existing(self, store, record_factory):
        store.create(record_factory("r1", category="payment"))

        stored = store.create(record_factory("r1", category="new_bid"))

        assert stored.category == "payment"
        assert store.get_stats("user-1")["total"] == 1

    def test_get_missing_returns_none(self, store):
        assert store.get("missing") is None

    def test_returned_records_are_copies(self, store, record_factory):
        store.create(record_factory("r1"))

        record = store.get("r1")
        record.delivery_status["email"] = DeliveryStatus.DELIVERED

        assert store.get("r1").delivery_status == {}


@pytest.mark.unit
class TestReadState:
    def test_mark_read_is_idempotent(self, store, record_factory, fake_clock):
        store.create(record_factory("r1"))

        first = store.mark_read("r1")
        fake_clock.advance(60)
        second = store.mark_read("r1")

        assert first.read_at == second.read_at
        assert second.version == first.version
        assert store.count_unread("user-1") == 0

    def test_mark_read_missing_raises(self, store):
        with pytest.raises(RecordNotFound):
            store.mark_read("missing")

    def test_count_unread_tracks_mutations(self, store, record_factory):
        for i in range(3):
            store.create(record_factory(f"r{i}", offset_seconds=i))
        store.create(record_factory("other", recipient_id="user-2"))

        assert store.count_unread("user-1") == 3

        store.mark_read("r0")
        assert store.count_unread("user-1") == 2

        store.delete("r1")
        assert store.count_unread("user-1") == 1

        store.delete("r0")
        assert store.count_unread("user-1") == 1
        assert store.count_unread("user-2") == 1

    def test_mark_all_read(self, store, record_factory):
        for i in range(3):
            store.create(record_factory(f"r{i}", offset_seconds=i))
        store.mark_read("r0")

        assert store.mark_all_read("user-1") == 2
        assert store.count_unread("user-1") == 0
        assert store.mark_all_read("user-1") == 0

    def test_delete_missing_returns_false(self, store):
        assert store.delete("missing") is False


@pytest.mark.unit
class TestDeliveryStatus:
    def test_status_moves_forward_only(self, store, record_factory):
        store.create(record_factory("r1"))
        store.set_pending("r1", ["email", "sms"])

        assert store.update_delivery_status("r1", "email", DeliveryStatus.DELIVERED)
        assert not store.update_delivery_status("r1", "email", DeliveryStatus.FAILED)
        assert not store.update_delivery_status("r1", "email", DeliveryStatus.PENDING)

        record = store.get("r1")
        assert record.delivery_status == {
            "email": DeliveryStatus.DELIVERED,
            "sms": DeliveryStatus.PENDING,
        }

    def test_set_pending_keeps_existing_entries(self, store, record_factory):
        store.create(record_factory("r1"))
        store.set_pending("r1", ["email"])
        store.update_delivery_status("r1", "email", DeliveryStatus.FAILED)

        record = store.set_pending("r1", ["email", "realtime"])

        assert record.delivery_status["email"] == DeliveryStatus.FAILED
        assert record.delivery_status["realtime"] == DeliveryStatus.PENDING

    def test_every_mutation_bumps_version(self, store, record_factory):
        store.create(record_factory("r1"))
        v1 = store.set_pending("r1", ["email"]).version
        store.update_delivery_status("r1", "email", DeliveryStatus.DELIVERED)
        v2 = store.get("r1").version
        v3 = store.mark_read("r1").version

        assert 1 < v1 < v2 < v3

    def test_update_missing_record_raises(self, store):
        with pytest.raises(RecordNotFound):
            store.update_delivery_status("missing", "email", DeliveryStatus.FAILED)


@pytest.mark.unit
class TestDeliveryClaims:
    def test_claim_is_exclusive_until_lease_expires(
        self, store, record_factory, fake_clock
    ):
        store.create(record_factory("r1"))
        store.set_pending("r1", ["sms"])

        assert store.claim_delivery("r1", "sms", "worker-a", 60)
        assert not store.claim_delivery("r1", "sms", "worker-b", 60)
        assert store.claim_delivery("r1", "sms", "worker-a", 60)

        fake_clock.advance(61)
        assert store.claim_delivery("r1", "sms", "worker-b", 60)

    def test_terminal_channel_cannot_be_claimed(self, store, record_factory):
        store.create(record_factory("r1"))
        store.set_pending("r1", ["sms"])
        store.update_delivery_status("r1", "sms", DeliveryStatus.DELIVERED)

        assert not store.claim_delivery("r1", "sms", "worker-a", 60)

    def test_claim_missing_record(self, store):
        assert not store.claim_delivery("missing", "sms", "worker-a", 60)

    def test_find_stale_pending_skips_claimed_and_recent(
        self, store, record_factory, fake_clock
    ):
        store.create(record_factory("old", offset_seconds=-900))
        store.create(record_factory("claimed", offset_seconds=-800))
        store.create(record_factory("recent", offset_seconds=-10))
        for record_id in ("old", "claimed", "recent"):
            store.set_pending(record_id, ["email"])
        store.claim_delivery("claimed", "email", "worker-a", 120)

        cutoff = fake_clock.now() - timedelta(seconds=600)
        stale = store.find_stale_pending(cutoff)

        assert [(record.id, channel) for record, channel in stale] == [("old", "email")]

    def test_find_stale_pending_respects_limit(self, store, record_factory, fake_clock):
        for i in range(3):
            store.create(record_factory(f"r{i}", offset_seconds=-1000 + i))
            store.set_pending(f"r{i}", ["email", "sms"])

        stale = store.find_stale_pending(fake_clock.now(), limit=4)

        assert len(stale) == 4
        assert stale[0][0].id == "r0"


@pytest.mark.unit
class TestPagination:
    def test_pages_are_newest_first(self, store, record_factory):
        for i in range(5):
            store.create(record_factory(f"r{i}", offset_seconds=i))

        page = store.list_paginated("user-1", page_size=2)

        assert [r.id for r in page.items] == ["r4", "r3"]
        assert page.next_cursor is not None

    def test_cursor_is_stable_across_inserts(self, store, record_factory):
        for i in range(5):
            store.create(record_factory(f"r{i}", offset_seconds=i))

        first = store.list_paginated("user-1", page_size=2)
        store.create(record_factory("newer", offset_seconds=100))
        second = store.list_paginated("user-1", cursor=first.next_cursor, page_size=2)
        third = store.list_paginated("user-1", cursor=second.next_cursor, page_size=2)

        assert [r.id for r in second.items] == ["r2", "r1"]
        assert [r.id for r in third.items] == ["r0"]
        assert third.next_cursor is None

    def test_same_timestamp_ordered_by_id(self, store, record_factory):
        for record_id in ("b", "a", "c"):
            store.create(record_factory(record_id))

        first = store.list_paginated("user-1", page_size=2)
        second = store.list_paginated("user-1", cursor=first.next_cursor, page_size=2)

        assert [r.id for r in first.items] == ["c", "b"]
        assert [r.id for r in second.items] == ["a"]

    def test_filters(self, store, record_factory):
        store.create(record_factory("r0", category="payment", offset_seconds=0))
        store.create(record_factory("r1", category="new_bid", offset_seconds=1))
        store.create(record_factory("r2", category="payment", offset_seconds=2))
        store.mark_read("r2")

        unread = store.list_paginated("user-1", unread_only=True)
        payments = store.list_paginated("user-1", category="payment")

        assert [r.id for r in unread.items] == ["r1", "r0"]
        assert [r.id for r in payments.items] == ["r2", "r0"]

    def test_unread_first_lists_unread_before_read(self, store, record_factory):
        store.create(record_factory("unread-old", offset_seconds=0))
        store.create(record_factory("read-new", offset_seconds=10))
        store.mark_read("read-new")

        default = store.list_paginated("user-1")
        page = store.list_paginated("user-1", unread_first=True)

        assert [r.id for r in default.items] == ["read-new", "unread-old"]
        assert [r.id for r in page.items] == ["unread-old", "read-new"]
        assert page.next_cursor is None

    def test_unread_first_pages_across_segments(self, store, record_factory):
        for i in range(5):
            store.create(record_factory(f"r{i}", offset_seconds=i))
        for record_id in ("r1", "r3"):
            store.mark_read(record_id)

        ids = []
        cursor = None
        while True:
            page = store.list_paginated(
                "user-1", cursor=cursor, page_size=2, unread_first=True
            )
            ids.extend(r.id for r in page.items)
            cursor = page.next_cursor
            if cursor is None:
                break

        assert ids == ["r4", "r2", "r0", "r3", "r1"]

    def test_unread_first_cursor_is_stable_across_inserts(
        self, store, record_factory
    ):
        for i in range(4):
            store.create(record_factory(f"r{i}", offset_seconds=i))
        store.mark_read("r0")
        store.mark_read("r1")

        first = store.list_paginated("user-1", page_size=3, unread_first=True)
        store.create(record_factory("newer", offset_seconds=100))
        second = store.list_paginated(
            "user-1", cursor=first.next_cursor, page_size=3, unread_first=True
        )

        assert [r.id for r in first.items] == ["r3", "r2", "r1"]
        assert [r.id for r in second.items] == ["r0"]
        assert second.next_cursor is None

    def test_unread_first_with_category(self, store, record_factory):
        store.create(record_factory("p0", category="payment", offset_seconds=0))
        store.create(record_factory("b1", category="new_bid", offset_seconds=1))
        store.create(record_factory("p2", category="payment", offset_seconds=2))
        store.mark_read("p2")

        page = store.list_paginated("user-1", category="payment", unread_first=True)

        assert [r.id for r in page.items] == ["p0", "p2"]

    def test_exact_page_has_no_cursor(self, store, record_factory):
        for i in range(2):
            store.create(record_factory(f"r{i}", offset_seconds=i))

        page = store.list_paginated("user-1", page_size=2)

        assert len(page.items) == 2
        assert page.next_cursor is None

    @pytest.mark.parametrize("page_size", [0, 101])
    def test_page_size_bounds(self, store, page_size):
        with pytest.raises(NotificationValidationError):
            store.list_paginated("user-1", page_size=page_size)

    @pytest.mark.parametrize("cursor", ["not-base64!!", "eyJmb28iOiAxfQ=="])
    def test_invalid_cursor(self, store, cursor):
        with pytest.raises(NotificationValidationError):
            store.list_paginated("user-1", cursor=cursor)

    def test_cursor_round_trip(self, fake_clock):
        cursor = encode_cursor(fake_clock.now(), "r1")

        assert decode_cursor(cursor) == (fake_clock.now(), "r1", 0)

    def test_cursor_carries_read_segment(self, fake_clock):
        cursor = encode_cursor(fake_clock.now(), "r1", segment=1)

        assert decode_cursor(cursor) == (fake_clock.now(), "r1", 1)

    def test_read_segment_cursor_rejected_without_unread_first(
        self, store, fake_clock
    ):
        cursor = encode_cursor(fake_clock.now(), "r1", segment=1)

        with pytest.raises(NotificationValidationError):
            store.list_paginated("user-1", cursor=cursor)


@pytest.mark.unit
class TestStatsAndCleanup:
    def test_get_stats(self, store, record_factory):
        store.create(record_factory("r0", category="payment"))
        store.create(
            record_factory(
                "r1",
                category="security_alert",
                offset_seconds=1,
                priority=NotificationPriority.CRITICAL,
            )
        )
        store.mark_read("r0")

        stats = store.get_stats("user-1")

        assert stats["total"] == 2
        assert stats["unread"] == 1
        assert stats["by_category"] == {"payment": 1, "security_alert": 1}
        assert stats["by_priority"] == {"normal": 1, "critical": 1}

    def test_cleanup_removes_only_old_read_records(
        self, store, record_factory, fake_clock
    ):
        store.create(record_factory("old_read", offset_seconds=-40 * 86400))
        store.create(record_factory("old_unread", offset_seconds=-40 * 86400 + 1))
        store.create(record_factory("new_read"))
        store.mark_read("old_read")
        store.mark_read("new_read")

        removed = store.cleanup_read_older_than(30)

        assert removed == 1
        assert store.get("old_read") is None
        assert store.get("old_unread") is not None
        assert store.get("new_read") is not None
        assert store.count_unread("user-1") == 1

    def test_health_check(self, store):
        assert store.health_check().is_success
