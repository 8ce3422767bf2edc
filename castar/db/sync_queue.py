"""
Sync outbox repository.

Every local mutation is appended here with a JSON copy of its payload. An
external sync process drains the queue in enqueue order and reports back
with ``mark_synced`` or ``record_failure``. Items that fail
``MAX_SYNC_RETRIES`` times stay in the table as dead letters for an operator.
"""

import json
from typing import Any, Optional, Union

from castar.config import DEFAULT_PENDING_LIMIT, MAX_SYNC_RETRIES
from castar.models.types import SyncAction, SyncTable

from .base import BaseRepository, new_id, now_ms
from .models import SyncQueueItem


class SyncQueueRepository(BaseRepository[SyncQueueItem]):
    """
    Append-only outbox of pending mutations.

    Ordering uses ``seq``, a counter assigned inside the insert statement, so
    two items enqueued within the same millisecond still replay in the order
    they were written.
    """

    table = "sync_queue"
    model = SyncQueueItem

    def __init__(self, db, max_retries: int = MAX_SYNC_RETRIES):
        super().__init__(db)
        self.max_retries = max_retries

    def enqueue(
        self,
        table_name: Union[SyncTable, str],
        record_id: str,
        action: SyncAction,
        data: Any,
        created_at: Optional[int] = None,
    ) -> SyncQueueItem:
        """
        Append one mutation.

        Args:
            table_name: Table the mutation applies to
            record_id: Primary key of the mutated record
            action: create, update or delete
            data: JSON-serializable payload, serialized now

        Returns:
            The queued item, including its sequence number
        """
        item = SyncQueueItem(
            id=new_id(),
            table_name=(
                table_name.value if isinstance(table_name, SyncTable) else table_name
            ),
            record_id=record_id,
            action=SyncAction(action),
            data=json.dumps(data),
            created_at=created_at if created_at is not None else now_ms(),
        )
        self.db.execute(
            """
            INSERT INTO sync_queue (
                id, table_name, record_id, action, data, created_at,
                attempts, last_error, seq
            ) VALUES (
                ?, ?, ?, ?, ?, ?, 0, NULL,
                (SELECT COALESCE(MAX(seq), 0) + 1 FROM sync_queue)
            )
            """,
            (
                item.id,
                item.table_name,
                item.record_id,
                item.action.value,
                item.data,
                item.created_at,
            ),
        )
        row = self.db.fetch_one("SELECT seq FROM sync_queue WHERE id = ?", (item.id,))
        item.seq = row["seq"] if row else None
        return item

    def find_pending(self, limit: int = DEFAULT_PENDING_LIMIT) -> list[SyncQueueItem]:
        """Items still within their retry budget, oldest first."""
        return self._find_many(
            """
            SELECT * FROM sync_queue
            WHERE attempts < ?
            ORDER BY seq ASC, created_at ASC
            LIMIT ?
            """,
            (self.max_retries, limit),
        )

    def find_dead(self) -> list[SyncQueueItem]:
        """Items that exhausted their retries and need operator attention."""
        return self._find_many(
            """
            SELECT * FROM sync_queue
            WHERE attempts >= ?
            ORDER BY seq ASC
            """,
            (self.max_retries,),
        )

    def find_by_record(self, table_name: str, record_id: str) -> list[SyncQueueItem]:
        return self._find_many(
            """
            SELECT * FROM sync_queue
            WHERE table_name = ? AND record_id = ?
            ORDER BY seq ASC
            """,
            (table_name, record_id),
        )

    def mark_synced(self, item_id: str) -> bool:
        """
        Drop an item the server acknowledged.

        Idempotent: an id that is already gone is a no-op.
        """
        return self.delete(item_id)

    def record_failure(self, item_id: str, error: str) -> bool:
        """Count one failed push and keep the latest error message."""
        cursor = self.db.execute(
            """
            UPDATE sync_queue
            SET attempts = attempts + 1, last_error = ?
            WHERE id = ?
            """,
            (error, item_id),
        )
        return cursor.rowcount > 0

    def pending_count(self) -> int:
        row = self.db.fetch_one(
            "SELECT COUNT(*) AS cnt FROM sync_queue WHERE attempts < ?",
            (self.max_retries,),
        )
        return row["cnt"] if row else 0

    def clear_all(self) -> int:
        cursor = self.db.execute("DELETE FROM sync_queue")
        return cursor.rowcount
