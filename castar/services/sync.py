"""
Sync service: drains the outbox through a transport.

The transport is whatever talks to the server; this module only decides
what to send, in which order, and how to record the outcome.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from castar.config import DEFAULT_PENDING_LIMIT
from castar.db.base import now_ms
from castar.db.models import SyncQueueItem
from castar.db.repository import LocalStore
from castar.models.types import SyncAction, SyncTable

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    """Server acknowledgement of one outbox item."""

    remote_id: Optional[str] = None


class SyncTransport(Protocol):
    def push(self, item: SyncQueueItem) -> Optional[PushResult]:
        """
        Send one outbox item to the server.

        Raises on any failure; the error message is stored on the item.
        """
        ...


@dataclass
class SyncReport:
    """Outcome of one drain."""

    processed: int = 0
    failed: int = 0
    dead: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class SyncService:
    """
    Pushes pending outbox items in enqueue order.

    A drain stops at the first failure so that later mutations of the same
    record are never applied on the server before earlier ones. An item that
    exhausts its retries becomes a dead letter and no longer blocks the queue.
    """

    def __init__(
        self,
        store: LocalStore,
        transport: SyncTransport,
        online: bool = True,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.transport = transport
        self.online = online
        self.clock = clock
        self._synced_repos = {
            SyncTable.ACCOUNTS.value: store.accounts,
            SyncTable.CATEGORIES.value: store.categories,
            SyncTable.TRANSACTIONS.value: store.transactions,
            SyncTable.BUDGETS.value: store.budgets,
        }

    def set_online_status(self, online: bool) -> Optional[SyncReport]:
        """
        Record connectivity; going online drains the queue.

        Returns:
            The drain report when a drain ran, otherwise None
        """
        was_online = self.online
        self.online = online
        logger.info(f"Sync is now {'online' if online else 'offline'}")
        if online and not was_online:
            return self.process_queue()
        return None

    def process_queue(self, limit: int = DEFAULT_PENDING_LIMIT) -> SyncReport:
        """
        Push up to ``limit`` pending items.

        Args:
            limit: Maximum number of items to push in this drain

        Returns:
            SyncReport with processed and failed counts and the ids of items
            that became dead letters during this drain
        """
        report = SyncReport()
        if not self.online:
            logger.debug("Offline, skipping outbox drain")
            return report

        for item in self.store.sync_queue.find_pending(limit):
            try:
                result = self.transport.push(item)
            except Exception as e:
                self._record_failure(item, e, report)
                break
            self._acknowledge(item, result)
            report.processed += 1

        if report.processed or report.failed:
            logger.info(
                f"Outbox drain: {report.processed} pushed, {report.failed} failed, "
                f"{self.store.sync_queue.pending_count()} pending"
            )
        return report

    def _acknowledge(self, item: SyncQueueItem, result: Optional[PushResult]):
        with self.store.db.transaction():
            self.store.sync_queue.mark_synced(item.id)
            repo = self._synced_repos.get(item.table_name)
            if repo is not None and item.action is not SyncAction.DELETE:
                repo.mark_remote(
                    item.record_id,
                    result.remote_id if result else None,
                    synced_at=self.clock(),
                )

    def _record_failure(self, item: SyncQueueItem, error: Exception, report: SyncReport):
        self.store.sync_queue.record_failure(item.id, str(error))
        report.failed += 1

        attempts = item.attempts + 1
        if attempts >= self.store.sync_queue.max_retries:
            report.dead.append(item.id)
            logger.error(
                f"Outbox item {item.id} ({item.action.value} {item.table_name}/"
                f"{item.record_id}) gave up after {attempts} attempts: {error}"
            )
        else:
            logger.warning(
                f"Failed to push outbox item {item.id} "
                f"(attempt {attempts}): {error}"
            )
