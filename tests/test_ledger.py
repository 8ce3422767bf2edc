"""Tests for the ledger service: balances, atomicity and outbox payloads."""

import math
import sqlite3

import pytest

from castar.errors import ValidationError
from castar.models import (
    AccountType,
    BudgetPeriod,
    CreateAccountDTO,
    CreateBudgetDTO,
    CreateCategoryDTO,
    CreateRecurringDTO,
    CreateTransactionDTO,
    SyncAction,
    TransactionType,
    UpdateAccountDTO,
    UpdateBudgetDTO,
    UpdateCategoryDTO,
    UpdateTransactionDTO,
)

from conftest import FIXED_NOW_MS, OTHER_USER_ID, USER_ID


@pytest.fixture
def cash(ledger):
    return ledger.create_account(
        USER_ID, CreateAccountDTO(name="Cash", type=AccountType.CASH, currency="UZS")
    )


@pytest.fixture
def card(ledger):
    return ledger.create_account(
        USER_ID, CreateAccountDTO(name="Card", type=AccountType.CARD, currency="UZS")
    )


@pytest.fixture
def food(ledger):
    return ledger.create_category(
        USER_ID,
        CreateCategoryDTO(
            name="Food", icon="food", color="#F55858", type=TransactionType.EXPENSE
        ),
    )


@pytest.fixture
def salary(ledger):
    return ledger.create_category(
        USER_ID,
        CreateCategoryDTO(
            name="Salary", icon="briefcase", color="#09AD4D", type=TransactionType.INCOME
        ),
    )


def spend(ledger, account, category, amount, transaction_type=TransactionType.EXPENSE):
    return ledger.create_transaction(
        USER_ID,
        CreateTransactionDTO(
            account_id=account.id,
            category_id=category.id,
            type=transaction_type,
            amount=amount,
            currency="UZS",
            date=FIXED_NOW_MS,
        ),
    )


def balance(store, account) -> float:
    return store.accounts.find_by_id(account.id).balance


class TestAccounts:
    def test_create_starts_at_zero_and_enqueues(self, ledger, store, cash):
        assert balance(store, cash) == 0
        [item] = store.sync_queue.find_by_record("accounts", cash.id)
        assert item.action is SyncAction.CREATE
        assert item.payload["name"] == "Cash"
        assert item.payload["is_archived"] is False

    def test_create_rejects_invalid(self, ledger, store):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_account(
                USER_ID, CreateAccountDTO(name="  ", type=AccountType.CASH, currency="UZS")
            )
        assert exc_info.value.field == "name"
        assert store.accounts.count() == 0
        assert store.sync_queue.count() == 0

    def test_update_enqueues_changed_fields(self, ledger, store, cash):
        updated = ledger.update_account(cash.id, UpdateAccountDTO(name="Pocket"))
        assert updated.name == "Pocket"
        item = store.sync_queue.find_by_record("accounts", cash.id)[-1]
        assert item.action is SyncAction.UPDATE
        assert item.payload == {"name": "Pocket", "updated_at": FIXED_NOW_MS}

    def test_update_missing(self, ledger):
        assert ledger.update_account("missing", UpdateAccountDTO(name="x")) is None

    def test_archive(self, ledger, store, cash):
        assert ledger.archive_account(cash.id)
        assert store.accounts.find_by_id(cash.id).is_archived
        assert store.sync_queue.find_by_record("accounts", cash.id)[-1].payload == {
            "is_archived": True,
            "updated_at": FIXED_NOW_MS,
        }
        # Archiving again writes nothing new
        assert ledger.archive_account(cash.id)
        assert len(store.sync_queue.find_by_record("accounts", cash.id)) == 2

    def test_archive_missing(self, ledger):
        assert ledger.archive_account("missing") is False


class TestTransactions:
    def test_create_adjusts_balance(self, ledger, store, cash, food, salary):
        spend(ledger, cash, salary, 300000, TransactionType.INCOME)
        spend(ledger, cash, food, 50000)
        assert balance(store, cash) == 250000

    def test_transfer_leaves_account(self, ledger, store, cash, food):
        spend(ledger, cash, food, 1000, TransactionType.TRANSFER)
        assert balance(store, cash) == -1000

    def test_create_enqueues_full_entity(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        [item] = store.sync_queue.find_by_record("transactions", transaction.id)
        assert item.action is SyncAction.CREATE
        assert item.payload == transaction.to_dict()

    def test_missing_account_is_constraint_error(self, ledger, store, food):
        """Nothing is written when the account does not exist."""
        dto = CreateTransactionDTO(
            account_id="missing",
            category_id=food.id,
            type=TransactionType.EXPENSE,
            amount=100,
            currency="UZS",
            date=FIXED_NOW_MS,
        )
        queued = store.sync_queue.count()
        with pytest.raises(sqlite3.IntegrityError):
            ledger.create_transaction(USER_ID, dto)
        assert store.transactions.count() == 0
        assert store.sync_queue.count() == queued

    def test_rejects_foreign_account(self, ledger, store, food):
        foreign = ledger.create_account(
            OTHER_USER_ID,
            CreateAccountDTO(name="Theirs", type=AccountType.CASH, currency="UZS"),
        )
        with pytest.raises(ValidationError) as exc_info:
            spend(ledger, foreign, food, 100)
        assert exc_info.value.field == "account_id"

    def test_rejects_non_positive_amount(self, ledger, cash, food):
        with pytest.raises(ValidationError) as exc_info:
            spend(ledger, cash, food, 0)
        assert exc_info.value.field == "amount"

    @pytest.mark.parametrize("amount", [math.inf, math.nan])
    def test_rejects_non_finite_amount(self, ledger, store, cash, food, amount):
        queued = store.sync_queue.count()
        with pytest.raises(ValidationError) as exc_info:
            spend(ledger, cash, food, amount)
        assert exc_info.value.field == "amount"
        assert store.transactions.count() == 0
        assert balance(store, cash) == 0
        assert store.sync_queue.count() == queued

    def test_update_rejects_non_finite_amount(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        with pytest.raises(ValidationError):
            ledger.update_transaction(transaction.id, UpdateTransactionDTO(amount=math.inf))
        assert balance(store, cash) == -50000
        assert ledger.delete_transaction(transaction.id)
        assert balance(store, cash) == 0

    def test_update_rejects_blank_currency(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        with pytest.raises(ValidationError) as exc_info:
            ledger.update_transaction(transaction.id, UpdateTransactionDTO(currency="   "))
        assert exc_info.value.field == "currency"
        assert store.transactions.find_by_id(transaction.id).currency == "UZS"

    def test_failed_enqueue_rolls_back_entity_and_balance(
        self, ledger, store, cash, food, monkeypatch
    ):
        """The entity write and balance change vanish if the outbox write fails."""

        def broken_enqueue(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store.sync_queue, "enqueue", broken_enqueue)
        with pytest.raises(sqlite3.OperationalError):
            spend(ledger, cash, food, 50000)

        assert store.transactions.count() == 0
        assert balance(store, cash) == 0

    def test_delete_reverses_balance(self, ledger, store, cash, food):
        first = spend(ledger, cash, food, 50000)
        spend(ledger, cash, food, 70000)

        assert ledger.delete_transaction(first.id)
        assert balance(store, cash) == -70000
        item = store.sync_queue.find_by_record("transactions", first.id)[-1]
        assert item.action is SyncAction.DELETE
        assert item.payload == {"id": first.id}

    def test_delete_missing(self, ledger):
        assert ledger.delete_transaction("missing") is False

    def test_update_amount_reapplies_delta(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        updated = ledger.update_transaction(
            transaction.id, UpdateTransactionDTO(amount=20000)
        )
        assert updated.amount == 20000
        assert balance(store, cash) == -20000

    def test_update_type_flips_sign(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        ledger.update_transaction(
            transaction.id, UpdateTransactionDTO(type=TransactionType.INCOME)
        )
        assert balance(store, cash) == 50000

    def test_update_account_moves_balance(self, ledger, store, cash, card, food):
        transaction = spend(ledger, cash, food, 50000)
        ledger.update_transaction(transaction.id, UpdateTransactionDTO(account_id=card.id))
        assert balance(store, cash) == 0
        assert balance(store, card) == -50000

    def test_update_description_leaves_balance(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        ledger.update_transaction(
            transaction.id, UpdateTransactionDTO(description="Plov")
        )
        assert balance(store, cash) == -50000
        item = store.sync_queue.find_by_record("transactions", transaction.id)[-1]
        assert item.payload == {"description": "Plov", "updated_at": FIXED_NOW_MS}

    def test_update_payload_serializes_enums(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        ledger.update_transaction(
            transaction.id, UpdateTransactionDTO(type=TransactionType.INCOME)
        )
        item = store.sync_queue.find_by_record("transactions", transaction.id)[-1]
        assert item.payload["type"] == "income"

    def test_empty_update_writes_nothing(self, ledger, store, cash, food):
        transaction = spend(ledger, cash, food, 50000)
        queued = store.sync_queue.count()
        assert ledger.update_transaction(transaction.id, UpdateTransactionDTO()) == transaction
        assert store.sync_queue.count() == queued

    def test_update_missing(self, ledger):
        assert ledger.update_transaction("missing", UpdateTransactionDTO(amount=1)) is None

    def test_balance_invariant_after_mixed_operations(
        self, ledger, store, cash, card, food, salary
    ):
        created = [
            spend(ledger, cash, salary, 500000, TransactionType.INCOME),
            spend(ledger, cash, food, 12000),
            spend(ledger, cash, food, 33000),
            spend(ledger, card, food, 8000),
            spend(ledger, cash, salary, 70000, TransactionType.INCOME),
        ]
        ledger.delete_transaction(created[1].id)
        ledger.update_transaction(created[2].id, UpdateTransactionDTO(amount=30000))
        ledger.update_transaction(created[3].id, UpdateTransactionDTO(account_id=cash.id))
        ledger.update_transaction(
            created[4].id, UpdateTransactionDTO(account_id=card.id, amount=60000)
        )

        for account in (cash, card):
            assert balance(store, account) == store.accounts.recompute_balance(account.id)
        assert balance(store, cash) == 500000 - 30000 - 8000
        assert balance(store, card) == 60000

    def test_balance_invariant_with_fractional_amounts(
        self, ledger, store, cash, food, salary
    ):
        """Float balances match the recomputed sum up to rounding."""
        created = [
            spend(ledger, cash, salary, 0.1, TransactionType.INCOME),
            spend(ledger, cash, salary, 0.2, TransactionType.INCOME),
            spend(ledger, cash, food, 0.3),
            spend(ledger, cash, food, 12.34),
        ]
        ledger.delete_transaction(created[3].id)
        ledger.update_transaction(created[2].id, UpdateTransactionDTO(amount=0.7))

        assert balance(store, cash) == pytest.approx(
            store.accounts.recompute_balance(cash.id)
        )
        assert balance(store, cash) == pytest.approx(-0.4)


class TestCategories:
    def test_create_appends_sort_order(self, ledger, seeded_store):
        category = ledger.create_category(
            USER_ID,
            CreateCategoryDTO(
                name="Pets", icon="paw", color="#123456", type=TransactionType.EXPENSE
            ),
        )
        assert category.sort_order == 14
        assert category.is_default is False

    def test_create_rejects_bad_color(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_category(
                USER_ID,
                CreateCategoryDTO(
                    name="Pets", icon="paw", color="red", type=TransactionType.EXPENSE
                ),
            )
        assert exc_info.value.field == "color"

    def test_update(self, ledger, store, food):
        updated = ledger.update_category(food.id, UpdateCategoryDTO(name="Groceries"))
        assert updated.name == "Groceries"
        assert store.categories.find_by_id(food.id).name == "Groceries"

    def test_delete_reassigns_to_other_bucket(self, ledger, seeded_store):
        store = seeded_store
        cash = store.accounts.find_by_user(USER_ID)[0]
        food = next(
            c for c in store.categories.find_by_user(USER_ID) if c.name == "categories.food"
        )
        other = store.categories.find_default_by_type(USER_ID, TransactionType.EXPENSE)
        transaction = spend(ledger, cash, food, 50000)
        budget = ledger.create_budget(
            USER_ID,
            CreateBudgetDTO(
                name="Food",
                amount=100000,
                currency="UZS",
                period=BudgetPeriod.MONTHLY,
                start_date=FIXED_NOW_MS,
                category_id=food.id,
            ),
        )

        assert ledger.delete_category(food.id)

        assert store.categories.find_by_id(food.id) is None
        assert store.transactions.find_by_id(transaction.id).category_id == other.id
        moved_budget = store.budgets.find_by_id(budget.id)
        assert moved_budget.category_id == other.id
        assert moved_budget.is_active is False
        assert balance(store, cash) == -50000

        actions = [
            (item.table_name, item.action)
            for item in store.sync_queue.find_pending(limit=100)[-3:]
        ]
        assert actions == [
            ("transactions", SyncAction.UPDATE),
            ("budgets", SyncAction.UPDATE),
            ("categories", SyncAction.DELETE),
        ]

    def test_delete_with_explicit_replacement(self, ledger, store, cash, food):
        snacks = ledger.create_category(
            USER_ID,
            CreateCategoryDTO(
                name="Snacks", icon="cookie", color="#AA5500", type=TransactionType.EXPENSE
            ),
        )
        transaction = spend(ledger, cash, food, 1000)
        assert ledger.delete_category(food.id, reassign_to=snacks.id)
        assert store.transactions.find_by_id(transaction.id).category_id == snacks.id

    def test_delete_in_use_without_replacement_fails(self, ledger, store, cash, food):
        """With no fallback category, a referenced category cannot be deleted."""
        transaction = spend(ledger, cash, food, 1000)
        queued = store.sync_queue.count()
        with pytest.raises(ValidationError):
            ledger.delete_category(food.id)
        assert store.categories.find_by_id(food.id) is not None
        assert store.transactions.find_by_id(transaction.id).category_id == food.id
        assert store.sync_queue.count() == queued

    def test_delete_unused_without_replacement(self, ledger, store, food):
        assert ledger.delete_category(food.id)
        assert store.categories.find_by_id(food.id) is None

    def test_delete_rejects_self_replacement(self, ledger, food):
        with pytest.raises(ValidationError):
            ledger.delete_category(food.id, reassign_to=food.id)

    def test_delete_rejects_replacement_of_other_type(
        self, ledger, store, cash, food, salary
    ):
        transaction = spend(ledger, cash, food, 1000)
        with pytest.raises(ValidationError) as exc_info:
            ledger.delete_category(food.id, reassign_to=salary.id)
        assert exc_info.value.field == "reassign_to"
        assert store.categories.find_by_id(food.id) is not None
        assert store.transactions.find_by_id(transaction.id).category_id == food.id

    def test_delete_missing(self, ledger):
        assert ledger.delete_category("missing") is False


class TestBudgets:
    def _create(self, ledger, category=None, **overrides):
        fields = dict(
            name="Monthly food",
            amount=100000,
            currency="UZS",
            period=BudgetPeriod.MONTHLY,
            start_date=FIXED_NOW_MS,
            category_id=category.id if category else None,
        )
        fields.update(overrides)
        return ledger.create_budget(USER_ID, CreateBudgetDTO(**fields))

    def test_create_and_list(self, ledger, store, food):
        budget = self._create(ledger, food)
        assert store.budgets.find_by_user(USER_ID) == [budget]

    def test_rejects_end_before_start(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            self._create(ledger, end_date=FIXED_NOW_MS - 1)
        assert exc_info.value.field == "end_date"

    def test_update(self, ledger, store, food):
        budget = self._create(ledger, food)
        updated = ledger.update_budget(budget.id, UpdateBudgetDTO(amount=150000))
        assert updated.amount == 150000
        assert store.budgets.find_by_id(budget.id).amount == 150000

    def test_update_rejects_end_before_start(self, ledger, food):
        budget = self._create(ledger, food)
        with pytest.raises(ValidationError):
            ledger.update_budget(budget.id, UpdateBudgetDTO(end_date=FIXED_NOW_MS - 1))

    def test_deactivate(self, ledger, store, food):
        budget = self._create(ledger, food)
        assert ledger.deactivate_budget(budget.id)
        assert store.budgets.find_by_user(USER_ID) == []
        assert store.budgets.find_by_id(budget.id).is_active is False

    def test_deactivate_missing(self, ledger):
        assert ledger.deactivate_budget("missing") is False


class TestRecurrings:
    def _create(self, ledger, account, category, next_date=FIXED_NOW_MS):
        return ledger.create_recurring(
            USER_ID,
            CreateRecurringDTO(
                account_id=account.id,
                category_id=category.id,
                type=TransactionType.EXPENSE,
                amount=250000,
                currency="UZS",
                frequency=BudgetPeriod.WEEKLY,
                next_date=next_date,
            ),
        )

    def test_due_and_pause(self, ledger, cash, food):
        rule = self._create(ledger, cash, food)
        assert [r.id for r in ledger.due_recurrings()] == [rule.id]

        assert ledger.pause_recurring(rule.id)
        assert ledger.due_recurrings() == []

        assert ledger.resume_recurring(rule.id)
        assert [r.id for r in ledger.due_recurrings(user_id=USER_ID)] == [rule.id]

    def test_advance_defaults_to_next_period(self, ledger, store, cash, food):
        rule = self._create(ledger, cash, food)
        advanced = ledger.advance_recurring(rule.id)
        assert advanced.next_date == FIXED_NOW_MS + 7 * 24 * 60 * 60 * 1000
        assert ledger.due_recurrings() == []
        assert store.sync_queue.find_by_record("recurrings", rule.id)[-1].payload == {
            "next_date": advanced.next_date,
            "updated_at": FIXED_NOW_MS,
        }

    def test_advance_to_explicit_date(self, ledger, store, cash, food):
        rule = self._create(ledger, cash, food)
        ledger.advance_recurring(rule.id, next_date=FIXED_NOW_MS + 5)
        assert store.recurrings.find_by_id(rule.id).next_date == FIXED_NOW_MS + 5

    def test_missing_rule(self, ledger):
        assert ledger.pause_recurring("missing") is False
        assert ledger.advance_recurring("missing") is None
