"""Tests for the first-run seed."""

import sqlite3

import pytest

from castar.db import DEFAULT_CATEGORIES, seed_defaults
from castar.models import AccountType, TransactionType

from conftest import FIXED_NOW_MS, OTHER_USER_ID, USER_ID


class TestSeedDefaults:
    def test_seeds_categories_and_cash_account(self, store):
        assert seed_defaults(store.db, USER_ID, now=FIXED_NOW_MS) is True

        categories = store.categories.find_by_user(USER_ID)
        assert len(categories) == len(DEFAULT_CATEGORIES) == 14
        assert all(c.is_default for c in categories)
        assert [c.sort_order for c in categories] == list(range(14))
        assert sum(c.type is TransactionType.INCOME for c in categories) == 4

        [account] = store.accounts.find_by_user(USER_ID)
        assert account.name == "Cash"
        assert account.type is AccountType.CASH
        assert account.currency == "UZS"
        assert account.balance == 0

    def test_idempotent(self, store):
        assert seed_defaults(store.db, USER_ID) is True
        assert seed_defaults(store.db, USER_ID) is False
        assert store.categories.count_by_user(USER_ID) == 14
        assert len(store.accounts.find_by_user(USER_ID)) == 1

    def test_users_are_seeded_independently(self, store):
        seed_defaults(store.db, USER_ID)
        assert seed_defaults(store.db, OTHER_USER_ID, currency="USD") is True
        [account] = store.accounts.find_by_user(OTHER_USER_ID)
        assert account.currency == "USD"

    def test_does_not_enqueue(self, store):
        seed_defaults(store.db, USER_ID)
        assert store.sync_queue.count() == 0

    def test_failure_leaves_nothing(self, store):
        """A failed account insert also rolls back the categories."""
        store.db.execute(
            """
            CREATE TRIGGER fail_account BEFORE INSERT ON accounts
            BEGIN SELECT RAISE(ABORT, 'disk full'); END
            """
        )
        with pytest.raises(sqlite3.IntegrityError):
            seed_defaults(store.db, USER_ID)
        assert store.categories.count_by_user(USER_ID) == 0

    def test_rejects_empty_user(self, store):
        with pytest.raises(ValueError):
            seed_defaults(store.db, "")

    def test_initialize_user_migrates_and_seeds(self, store):
        assert store.initialize_user(USER_ID) is True
        assert store.initialize_user(USER_ID) is False
