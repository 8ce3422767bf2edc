"""
CaStar - Offline-first personal finance store

Local persistence for accounts, categories, transactions, budgets and
recurring rules, with an outbox that replays every change to a server.
"""

from .config import VERSION
from .db import Database, LocalStore, open_store
from .errors import ValidationError
from .services import (
    AggregationService,
    ExportService,
    LedgerService,
    SyncService,
)

__version__ = VERSION

__all__ = [
    "AggregationService",
    "Database",
    "ExportService",
    "LedgerService",
    "LocalStore",
    "SyncService",
    "ValidationError",
    "open_store",
]
