"""
Database module for the CaStar local store.

This module provides the embedded SQLite layer: typed repositories per table,
the incremental balance ledger, the sync outbox, schema migrations and the
first-run seed.

Structure:
- base.py: Database handle and generic repository
- models.py: Entity dataclasses with explicit row mapping
- migrations.py: Versioned schema
- accounts.py, categories.py, transactions.py, budget.py, recurring.py:
  entity repositories
- sync_queue.py: Outbox of pending mutations
- exchange_rates.py: Cached currency rates
- seed.py: Default categories and cash account
- repository.py: Facade that composes all repositories
"""

from .accounts import AccountRepository
from .base import BaseRepository, Database, SyncedRepository, new_id, now_ms
from .budget import BudgetRepository
from .categories import CategoryRepository
from .exchange_rates import ExchangeRateRepository
from .migrations import LATEST_VERSION, current_version, run_migrations
from .models import (
    Account,
    Budget,
    Category,
    ExchangeRate,
    RecurringTransaction,
    SyncQueueItem,
    Transaction,
)
from .recurring import RecurringRepository
from .repository import LocalStore, open_store
from .seed import DEFAULT_CATEGORIES, seed_defaults
from .sync_queue import SyncQueueRepository
from .transactions import TransactionRepository

__all__ = [
    # Base
    "BaseRepository",
    "Database",
    "SyncedRepository",
    "new_id",
    "now_ms",
    # Models
    "Account",
    "Budget",
    "Category",
    "ExchangeRate",
    "RecurringTransaction",
    "SyncQueueItem",
    "Transaction",
    # Repositories
    "AccountRepository",
    "BudgetRepository",
    "CategoryRepository",
    "ExchangeRateRepository",
    "LocalStore",
    "RecurringRepository",
    "SyncQueueRepository",
    "TransactionRepository",
    # Schema and bootstrap
    "DEFAULT_CATEGORIES",
    "LATEST_VERSION",
    "current_version",
    "open_store",
    "run_migrations",
    "seed_defaults",
]
