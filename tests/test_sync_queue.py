"""Tests for the sync outbox repository."""

import pytest

from castar.db import LocalStore
from castar.models import SyncAction, SyncTable

from conftest import FIXED_NOW_MS


def enqueue(store, record_id="r1", action=SyncAction.UPDATE, created_at=FIXED_NOW_MS):
    return store.sync_queue.enqueue(
        SyncTable.TRANSACTIONS, record_id, action, {"id": record_id}, created_at=created_at
    )


class TestEnqueue:
    def test_captures_payload_as_json(self, store):
        item = store.sync_queue.enqueue(
            "accounts", "a1", SyncAction.CREATE, {"name": "Cash", "balance": 0}
        )
        found = store.sync_queue.find_by_id(item.id)
        assert found.table_name == "accounts"
        assert found.payload == {"name": "Cash", "balance": 0}
        assert found.attempts == 0
        assert found.last_error is None

    def test_sequence_is_monotonic(self, store):
        seqs = [enqueue(store).seq for _ in range(3)]
        assert seqs == [1, 2, 3]

    def test_sequence_stays_ahead_of_queued_items(self, store):
        first = enqueue(store)
        enqueue(store)
        store.sync_queue.mark_synced(first.id)
        assert enqueue(store).seq == 3

    def test_rejects_unknown_action(self, store):
        with pytest.raises(ValueError):
            store.sync_queue.enqueue("accounts", "a1", "upsert", {})


class TestFindPending:
    def test_fifo_with_identical_timestamps(self, store):
        """Items created in the same millisecond keep their enqueue order."""
        items = [
            enqueue(store, action=action)
            for action in (SyncAction.CREATE, SyncAction.UPDATE, SyncAction.DELETE)
        ]
        pending = store.sync_queue.find_pending()
        assert [p.id for p in pending] == [i.id for i in items]
        assert [p.id for p in store.sync_queue.find_pending(limit=2)] == [
            i.id for i in items[:2]
        ]

    def test_sequence_wins_over_wall_clock(self, store):
        """A clock that steps backwards does not reorder the outbox."""
        first = enqueue(store, created_at=2000)
        second = enqueue(store, created_at=1000)
        assert [p.id for p in store.sync_queue.find_pending()] == [first.id, second.id]

    def test_default_limit(self, store):
        for i in range(55):
            enqueue(store, record_id=f"r{i}")
        assert len(store.sync_queue.find_pending()) == 50
        assert store.sync_queue.pending_count() == 55

    def test_dead_letter_boundary(self, store):
        two = enqueue(store, record_id="two")
        three = enqueue(store, record_id="three")
        for _ in range(2):
            store.sync_queue.record_failure(two.id, "timeout")
        for _ in range(3):
            store.sync_queue.record_failure(three.id, "timeout")

        pending_ids = [p.id for p in store.sync_queue.find_pending()]
        assert two.id in pending_ids
        assert three.id not in pending_ids
        assert [d.id for d in store.sync_queue.find_dead()] == [three.id]

    def test_retry_exhaustion_keeps_item(self, store):
        item = enqueue(store)
        for attempt in range(3):
            store.sync_queue.record_failure(item.id, f"HTTP 500 on attempt {attempt + 1}")

        assert store.sync_queue.find_pending() == []
        found = store.sync_queue.find_by_id(item.id)
        assert found.attempts == 3
        assert found.last_error == "HTTP 500 on attempt 3"
        assert found.is_dead()

    def test_custom_retry_budget(self, db):
        store = LocalStore(db, max_sync_retries=1)
        item = enqueue(store)
        store.sync_queue.record_failure(item.id, "boom")
        assert store.sync_queue.find_pending() == []


class TestAcknowledgement:
    def test_mark_synced_is_idempotent(self, store):
        item = enqueue(store)
        assert store.sync_queue.mark_synced(item.id) is True
        assert store.sync_queue.mark_synced(item.id) is False
        assert store.sync_queue.find_by_id(item.id) is None

    def test_record_failure_on_missing_item(self, store):
        assert store.sync_queue.record_failure("missing", "boom") is False

    def test_find_by_record(self, store):
        enqueue(store, record_id="a")
        enqueue(store, record_id="b")
        enqueue(store, record_id="a", action=SyncAction.DELETE)
        actions = [i.action for i in store.sync_queue.find_by_record("transactions", "a")]
        assert actions == [SyncAction.UPDATE, SyncAction.DELETE]

    def test_clear_all(self, store):
        enqueue(store)
        enqueue(store)
        assert store.sync_queue.clear_all() == 2
        assert store.sync_queue.count() == 0
