"""
Local store facade.

Composes every repository over one shared ``Database`` handle. The
application root builds one ``LocalStore`` and hands it to the services;
nothing here is a module-level singleton.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from castar.config import MAX_SYNC_RETRIES, get_db_path

from .accounts import AccountRepository
from .base import Database
from .budget import BudgetRepository
from .categories import CategoryRepository
from .exchange_rates import ExchangeRateRepository
from .migrations import run_migrations
from .recurring import RecurringRepository
from .seed import seed_defaults
from .sync_queue import SyncQueueRepository
from .transactions import TransactionRepository

logger = logging.getLogger(__name__)


class LocalStore:
    """All repositories of the embedded store, sharing one database handle."""

    def __init__(self, db: Database, max_sync_retries: int = MAX_SYNC_RETRIES):
        """
        Initialize the store facade.

        Args:
            db: Database handle, usually with migrations already applied
            max_sync_retries: Failures after which an outbox item is dead-lettered
        """
        self.db = db
        self.accounts = AccountRepository(db)
        self.categories = CategoryRepository(db)
        self.transactions = TransactionRepository(db)
        self.budgets = BudgetRepository(db)
        self.recurrings = RecurringRepository(db)
        self.sync_queue = SyncQueueRepository(db, max_retries=max_sync_retries)
        self.exchange_rates = ExchangeRateRepository(db)

    def migrate(self) -> list[int]:
        return run_migrations(self.db)

    def initialize_user(self, user_id: str) -> bool:
        """Run migrations and seed defaults for ``user_id``."""
        self.migrate()
        return seed_defaults(self.db, user_id)

    def close(self):
        self.db.close()


def open_store(path: Union[Path, str, None] = None, migrate: bool = True) -> LocalStore:
    """
    Open a store at ``path`` (default: configured database path).

    Args:
        path: Database file, or ":memory:"
        migrate: Whether to apply pending migrations

    Returns:
        A ready LocalStore
    """
    db = Database(path if path is not None else get_db_path())
    store = LocalStore(db)
    if migrate:
        store.migrate()
    logger.info(f"LocalStore opened at {db.path}")
    return store
