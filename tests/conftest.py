"""
Shared fixtures.

Every test gets a fresh in-memory database with all migrations applied, and
services run against a fixed clock (Friday 2024-03-15 12:00 local time).
"""

from datetime import datetime
from typing import Optional

import pytest

from castar.db import (
    Account,
    Category,
    Database,
    LocalStore,
    Transaction,
    new_id,
    run_migrations,
    seed_defaults,
)
from castar.models import AccountType, TransactionType
from castar.services import AggregationService, LedgerService

FIXED_NOW = datetime(2024, 3, 15, 12, 0, 0)
FIXED_NOW_MS = int(FIXED_NOW.timestamp() * 1000)
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@pytest.fixture
def db():
    database = Database()
    run_migrations(database)
    yield database
    database.close()


@pytest.fixture
def store(db):
    return LocalStore(db)


@pytest.fixture
def seeded_store(store):
    seed_defaults(store.db, USER_ID, now=FIXED_NOW_MS)
    return store


@pytest.fixture
def ledger(store):
    return LedgerService(store, clock=lambda: FIXED_NOW_MS)


@pytest.fixture
def aggregation(store):
    return AggregationService(store, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_account(store):
    """Insert an account directly through the repository."""

    def _make(user_id: str = USER_ID, name: str = "Wallet", balance: float = 0.0):
        account = Account(
            id=new_id(),
            user_id=user_id,
            name=name,
            type=AccountType.CASH,
            currency="UZS",
            balance=balance,
            created_at=FIXED_NOW_MS,
            updated_at=FIXED_NOW_MS,
        )
        return store.accounts.insert(account)

    return _make


@pytest.fixture
def make_category(store):
    """Insert a category directly through the repository."""

    def _make(
        user_id: str = USER_ID,
        name: str = "Food",
        category_type: TransactionType = TransactionType.EXPENSE,
        sort_order: int = 0,
        is_default: bool = False,
    ):
        category = Category(
            id=new_id(),
            user_id=user_id,
            name=name,
            icon="food",
            color="#F55858",
            type=category_type,
            is_default=is_default,
            sort_order=sort_order,
            created_at=FIXED_NOW_MS,
            updated_at=FIXED_NOW_MS,
        )
        return store.categories.insert(category)

    return _make


@pytest.fixture
def make_transaction(store):
    """Insert a transaction directly, without touching the balance."""

    def _make(
        account: Account,
        category: Category,
        amount: float = 1000,
        transaction_type: TransactionType = TransactionType.EXPENSE,
        date: Optional[int] = None,
        description: Optional[str] = None,
    ):
        transaction = Transaction(
            id=new_id(),
            user_id=account.user_id,
            account_id=account.id,
            category_id=category.id,
            type=transaction_type,
            amount=amount,
            currency="UZS",
            date=date if date is not None else FIXED_NOW_MS,
            description=description,
            created_at=FIXED_NOW_MS,
            updated_at=FIXED_NOW_MS,
        )
        return store.transactions.insert(transaction)

    return _make
