"""
Ledger service: the mutation path of the local store.

Every user-facing change runs as one storage transaction that writes the
entity, adjusts account balances when money moves, and appends the matching
outbox item. Either all three happen or none does.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Optional

from castar.db.base import new_id, now_ms
from castar.db.models import (
    Account,
    Budget,
    Category,
    RecurringTransaction,
    Transaction,
)
from castar.db.repository import LocalStore
from castar.errors import ValidationError
from castar.models.dto import (
    CreateAccountDTO,
    CreateBudgetDTO,
    CreateCategoryDTO,
    CreateRecurringDTO,
    CreateTransactionDTO,
    UpdateAccountDTO,
    UpdateBudgetDTO,
    UpdateCategoryDTO,
    UpdateTransactionDTO,
)
from castar.models.types import SyncAction, SyncTable

from .periods import next_occurrence

logger = logging.getLogger(__name__)


def _payload(changes: dict[str, Any]) -> dict[str, Any]:
    """JSON-safe copy of a partial update."""
    return {
        name: value.value if isinstance(value, Enum) else value
        for name, value in changes.items()
    }


class LedgerService:
    """
    Creates, edits and removes entities while keeping balances and the
    outbox consistent with them.
    """

    def __init__(self, store: LocalStore, clock: Callable[[], int] = now_ms):
        """
        Initialize the ledger service.

        Args:
            store: Local store with all repositories
            clock: Source of "now" in epoch milliseconds
        """
        self.store = store
        self.clock = clock

    @property
    def db(self):
        return self.store.db

    def _enqueue(
        self,
        table: SyncTable,
        record_id: str,
        action: SyncAction,
        data: dict[str, Any],
        now: int,
    ):
        self.store.sync_queue.enqueue(table, record_id, action, data, created_at=now)

    @staticmethod
    def _check_owner(entity: Any, user_id: str, field: str):
        # A missing target is left to the foreign key constraint
        if entity is not None and entity.user_id != user_id:
            raise ValidationError(f"{field} belongs to another user", field)

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_account(self, user_id: str, dto: CreateAccountDTO) -> Account:
        """
        Create an account with a zero balance.

        An opening balance is recorded as an income transaction, so the
        balance always equals the account's transaction history.
        """
        dto.validate()
        now = self.clock()
        account = Account(
            id=new_id(),
            user_id=user_id,
            name=dto.name.strip(),
            type=dto.type,
            currency=dto.currency,
            icon=dto.icon,
            color=dto.color,
            created_at=now,
            updated_at=now,
        )

        with self.db.transaction():
            self.store.accounts.insert(account)
            self._enqueue(
                SyncTable.ACCOUNTS, account.id, SyncAction.CREATE, account.to_dict(), now
            )

        logger.info(f"Created account {account.id} ({account.type.value}) for {user_id}")
        return account

    def update_account(
        self, account_id: str, dto: UpdateAccountDTO
    ) -> Optional[Account]:
        dto.validate()
        account = self.store.accounts.find_by_id(account_id)
        if account is None:
            return None
        changes = dto.changes()
        if not changes:
            return account

        now = self.clock()
        changes["updated_at"] = now
        with self.db.transaction():
            self.store.accounts.update(account_id, changes)
            self._enqueue(
                SyncTable.ACCOUNTS, account_id, SyncAction.UPDATE, _payload(changes), now
            )

        logger.info(f"Updated account {account_id}: {sorted(changes)}")
        return replace(account, **changes)

    def archive_account(self, account_id: str) -> bool:
        """Soft-delete an account. Its transactions and balance are kept."""
        account = self.store.accounts.find_by_id(account_id)
        if account is None:
            return False
        if account.is_archived:
            return True

        now = self.clock()
        with self.db.transaction():
            self.store.accounts.archive(account_id, updated_at=now)
            self._enqueue(
                SyncTable.ACCOUNTS,
                account_id,
                SyncAction.UPDATE,
                {"is_archived": True, "updated_at": now},
                now,
            )

        logger.info(f"Archived account {account_id}")
        return True

    # =========================================================================
    # Categories
    # =========================================================================

    def create_category(self, user_id: str, dto: CreateCategoryDTO) -> Category:
        dto.validate()
        now = self.clock()

        with self.db.transaction():
            category = Category(
                id=new_id(),
                user_id=user_id,
                name=dto.name.strip(),
                icon=dto.icon,
                color=dto.color,
                type=dto.type,
                parent_id=dto.parent_id,
                sort_order=self.store.categories.next_sort_order(user_id),
                created_at=now,
                updated_at=now,
            )
            self.store.categories.insert(category)
            self._enqueue(
                SyncTable.CATEGORIES,
                category.id,
                SyncAction.CREATE,
                category.to_dict(),
                now,
            )

        logger.info(f"Created category {category.id} ({category.type.value}) for {user_id}")
        return category

    def update_category(
        self, category_id: str, dto: UpdateCategoryDTO
    ) -> Optional[Category]:
        dto.validate()
        category = self.store.categories.find_by_id(category_id)
        if category is None:
            return None
        changes = dto.changes()
        if not changes:
            return category

        now = self.clock()
        changes["updated_at"] = now
        with self.db.transaction():
            self.store.categories.update(category_id, changes)
            self._enqueue(
                SyncTable.CATEGORIES,
                category_id,
                SyncAction.UPDATE,
                _payload(changes),
                now,
            )

        logger.info(f"Updated category {category_id}: {sorted(changes)}")
        return replace(category, **changes)

    def delete_category(
        self, category_id: str, reassign_to: Optional[str] = None
    ) -> bool:
        """
        Delete a category, moving everything that references it.

        Transactions and recurring rules move to the replacement category.
        Budgets move too but are deactivated, since their limit was set for
        the deleted category.

        Args:
            category_id: Category to delete
            reassign_to: Replacement category; defaults to the "other"
                category of the same type

        Returns:
            True if the category was deleted, False if it did not exist

        Raises:
            ValidationError: If the replacement is invalid or of another type,
                or no replacement exists while the category is still referenced
        """
        category = self.store.categories.find_by_id(category_id)
        if category is None:
            return False

        if reassign_to is not None:
            target = self.store.categories.find_by_id(reassign_to)
            if target is None or target.id == category_id:
                raise ValidationError(
                    f"Invalid replacement category: {reassign_to}", "reassign_to"
                )
            self._check_owner(target, category.user_id, "reassign_to")
            if target.type is not category.type:
                raise ValidationError(
                    f"Replacement category {reassign_to} is {target.type.value}, "
                    f"expected {category.type.value}",
                    "reassign_to",
                )
        else:
            target = self.store.categories.find_default_by_type(
                category.user_id, category.type, exclude_id=category_id
            )

        now = self.clock()
        with self.db.transaction():
            if target is None:
                if self._is_referenced(category_id):
                    raise ValidationError(
                        f"Category {category_id} is in use and has no replacement",
                        "reassign_to",
                    )
                moved = {}
            else:
                moved = {
                    SyncTable.TRANSACTIONS: self.store.transactions.reassign_category(
                        category_id, target.id, now
                    ),
                    SyncTable.BUDGETS: self.store.budgets.reassign_category(
                        category_id, target.id, now
                    ),
                    SyncTable.RECURRINGS: self.store.recurrings.reassign_category(
                        category_id, target.id, now
                    ),
                }

            for table, record_ids in moved.items():
                data = {"category_id": target.id, "updated_at": now}
                if table is SyncTable.BUDGETS:
                    data["is_active"] = False
                for record_id in record_ids:
                    self._enqueue(table, record_id, SyncAction.UPDATE, data, now)

            self.store.categories.delete(category_id)
            self._enqueue(
                SyncTable.CATEGORIES,
                category_id,
                SyncAction.DELETE,
                {"id": category_id},
                now,
            )

        moved_count = sum(len(ids) for ids in moved.values())
        logger.info(f"Deleted category {category_id}, reassigned {moved_count} records")
        return True

    def _is_referenced(self, category_id: str) -> bool:
        row = self.db.fetch_one(
            """
            SELECT
                (SELECT COUNT(*) FROM transactions WHERE category_id = ?)
              + (SELECT COUNT(*) FROM budgets WHERE category_id = ?)
              + (SELECT COUNT(*) FROM recurrings WHERE category_id = ?) AS refs
            """,
            (category_id, category_id, category_id),
        )
        return bool(row and row["refs"])

    # =========================================================================
    # Transactions
    # =========================================================================

    def create_transaction(
        self, user_id: str, dto: CreateTransactionDTO
    ) -> Transaction:
        """
        Record a transaction and apply it to its account balance.

        Raises:
            ValidationError: If the input is invalid or references another
                user's account or category
            sqlite3.IntegrityError: If the account or category does not exist
        """
        dto.validate()
        self._check_owner(
            self.store.accounts.find_by_id(dto.account_id), user_id, "account_id"
        )
        self._check_owner(
            self.store.categories.find_by_id(dto.category_id), user_id, "category_id"
        )

        now = self.clock()
        transaction = Transaction(
            id=new_id(),
            user_id=user_id,
            account_id=dto.account_id,
            category_id=dto.category_id,
            family_group_id=dto.family_group_id,
            type=dto.type,
            amount=dto.amount,
            currency=dto.currency,
            amount_in_default=dto.amount_in_default,
            exchange_rate=dto.exchange_rate,
            description=dto.description,
            date=dto.date,
            voice_input=dto.voice_input,
            created_at=now,
            updated_at=now,
        )

        with self.db.transaction():
            self.store.transactions.insert(transaction)
            self.store.accounts.adjust_balance(
                transaction.account_id, transaction.signed_amount, updated_at=now
            )
            self._enqueue(
                SyncTable.TRANSACTIONS,
                transaction.id,
                SyncAction.CREATE,
                transaction.to_dict(),
                now,
            )

        logger.info(
            f"Created {transaction.type.value} transaction {transaction.id}: "
            f"{transaction.amount} {transaction.currency} on {transaction.account_id}"
        )
        return transaction

    def update_transaction(
        self, transaction_id: str, dto: UpdateTransactionDTO
    ) -> Optional[Transaction]:
        """
        Edit a transaction.

        When the amount, type or account changes, the old effect is reversed
        on the old account and the new effect applied on the new one, as if
        the transaction had been deleted and recreated.

        Returns:
            The updated transaction, or None if it does not exist
        """
        dto.validate()
        old = self.store.transactions.find_by_id(transaction_id)
        if old is None:
            return None
        changes = dto.changes()
        if not changes:
            return old
        if "account_id" in changes:
            self._check_owner(
                self.store.accounts.find_by_id(changes["account_id"]),
                old.user_id,
                "account_id",
            )
        if "category_id" in changes:
            self._check_owner(
                self.store.categories.find_by_id(changes["category_id"]),
                old.user_id,
                "category_id",
            )

        now = self.clock()
        changes["updated_at"] = now
        new = replace(old, **changes)

        with self.db.transaction():
            self.store.transactions.update(transaction_id, changes)
            if dto.touches_ledger() and (
                old.account_id != new.account_id
                or old.signed_amount != new.signed_amount
            ):
                self.store.accounts.adjust_balance(
                    old.account_id, -old.signed_amount, updated_at=now
                )
                self.store.accounts.adjust_balance(
                    new.account_id, new.signed_amount, updated_at=now
                )
            self._enqueue(
                SyncTable.TRANSACTIONS,
                transaction_id,
                SyncAction.UPDATE,
                _payload(changes),
                now,
            )

        logger.info(f"Updated transaction {transaction_id}: {sorted(changes)}")
        return new

    def delete_transaction(self, transaction_id: str) -> bool:
        """Remove a transaction and reverse its effect on the account balance."""
        transaction = self.store.transactions.find_by_id(transaction_id)
        if transaction is None:
            return False

        now = self.clock()
        with self.db.transaction():
            self.store.transactions.delete(transaction_id)
            self.store.accounts.adjust_balance(
                transaction.account_id, -transaction.signed_amount, updated_at=now
            )
            self._enqueue(
                SyncTable.TRANSACTIONS,
                transaction_id,
                SyncAction.DELETE,
                {"id": transaction_id},
                now,
            )

        logger.info(f"Deleted transaction {transaction_id}")
        return True

    # =========================================================================
    # Budgets
    # =========================================================================

    def create_budget(self, user_id: str, dto: CreateBudgetDTO) -> Budget:
        dto.validate()
        if dto.category_id is not None:
            self._check_owner(
                self.store.categories.find_by_id(dto.category_id),
                user_id,
                "category_id",
            )

        now = self.clock()
        budget = Budget(
            id=new_id(),
            user_id=user_id,
            family_group_id=dto.family_group_id,
            category_id=dto.category_id,
            name=dto.name.strip(),
            amount=dto.amount,
            currency=dto.currency,
            period=dto.period,
            start_date=dto.start_date,
            end_date=dto.end_date,
            created_at=now,
            updated_at=now,
        )

        with self.db.transaction():
            self.store.budgets.insert(budget)
            self._enqueue(
                SyncTable.BUDGETS, budget.id, SyncAction.CREATE, budget.to_dict(), now
            )

        logger.info(
            f"Created {budget.period.value} budget {budget.id} of {budget.amount} "
            f"{budget.currency} for {user_id}"
        )
        return budget

    def update_budget(self, budget_id: str, dto: UpdateBudgetDTO) -> Optional[Budget]:
        dto.validate()
        budget = self.store.budgets.find_by_id(budget_id)
        if budget is None:
            return None
        changes = dto.changes()
        if not changes:
            return budget
        if "category_id" in changes:
            self._check_owner(
                self.store.categories.find_by_id(changes["category_id"]),
                budget.user_id,
                "category_id",
            )

        updated = replace(budget, **changes)
        if updated.end_date is not None and updated.end_date < updated.start_date:
            raise ValidationError("end_date must not precede start_date", "end_date")

        now = self.clock()
        changes["updated_at"] = now
        with self.db.transaction():
            self.store.budgets.update(budget_id, changes)
            self._enqueue(
                SyncTable.BUDGETS, budget_id, SyncAction.UPDATE, _payload(changes), now
            )

        logger.info(f"Updated budget {budget_id}: {sorted(changes)}")
        return replace(updated, updated_at=now)

    def deactivate_budget(self, budget_id: str) -> bool:
        budget = self.store.budgets.find_by_id(budget_id)
        if budget is None:
            return False
        if not budget.is_active:
            return True

        now = self.clock()
        with self.db.transaction():
            self.store.budgets.deactivate(budget_id, updated_at=now)
            self._enqueue(
                SyncTable.BUDGETS,
                budget_id,
                SyncAction.UPDATE,
                {"is_active": False, "updated_at": now},
                now,
            )

        logger.info(f"Deactivated budget {budget_id}")
        return True

    # =========================================================================
    # Recurring rules
    # =========================================================================

    def create_recurring(
        self, user_id: str, dto: CreateRecurringDTO
    ) -> RecurringTransaction:
        dto.validate()
        self._check_owner(
            self.store.accounts.find_by_id(dto.account_id), user_id, "account_id"
        )
        self._check_owner(
            self.store.categories.find_by_id(dto.category_id), user_id, "category_id"
        )

        now = self.clock()
        recurring = RecurringTransaction(
            id=new_id(),
            user_id=user_id,
            account_id=dto.account_id,
            category_id=dto.category_id,
            type=dto.type,
            amount=dto.amount,
            currency=dto.currency,
            description=dto.description,
            frequency=dto.frequency,
            next_date=dto.next_date,
            created_at=now,
            updated_at=now,
        )

        with self.db.transaction():
            self.store.recurrings.insert(recurring)
            self._enqueue(
                SyncTable.RECURRINGS,
                recurring.id,
                SyncAction.CREATE,
                recurring.to_dict(),
                now,
            )

        logger.info(
            f"Created {recurring.frequency.value} recurring rule {recurring.id} "
            f"for {user_id}"
        )
        return recurring

    def pause_recurring(self, recurring_id: str) -> bool:
        return self._set_recurring_active(recurring_id, False)

    def resume_recurring(self, recurring_id: str) -> bool:
        return self._set_recurring_active(recurring_id, True)

    def _set_recurring_active(self, recurring_id: str, active: bool) -> bool:
        recurring = self.store.recurrings.find_by_id(recurring_id)
        if recurring is None:
            return False
        if recurring.is_active == active:
            return True

        now = self.clock()
        with self.db.transaction():
            if active:
                self.store.recurrings.resume(recurring_id, updated_at=now)
            else:
                self.store.recurrings.pause(recurring_id, updated_at=now)
            self._enqueue(
                SyncTable.RECURRINGS,
                recurring_id,
                SyncAction.UPDATE,
                {"is_active": active, "updated_at": now},
                now,
            )

        logger.info(f"{'Resumed' if active else 'Paused'} recurring rule {recurring_id}")
        return True

    def advance_recurring(
        self, recurring_id: str, next_date: Optional[int] = None
    ) -> Optional[RecurringTransaction]:
        """
        Move a rule's ``next_date`` forward.

        Args:
            recurring_id: Rule to advance
            next_date: New due date; defaults to one period after the current one

        Returns:
            The updated rule, or None if it does not exist
        """
        recurring = self.store.recurrings.find_by_id(recurring_id)
        if recurring is None:
            return None
        if next_date is None:
            next_date = next_occurrence(recurring.next_date, recurring.frequency)

        now = self.clock()
        with self.db.transaction():
            self.store.recurrings.update_next_date(recurring_id, next_date, updated_at=now)
            self._enqueue(
                SyncTable.RECURRINGS,
                recurring_id,
                SyncAction.UPDATE,
                {"next_date": next_date, "updated_at": now},
                now,
            )

        logger.debug(f"Advanced recurring rule {recurring_id} to {next_date}")
        return replace(recurring, next_date=next_date, updated_at=now)

    def due_recurrings(
        self, now: Optional[int] = None, user_id: Optional[str] = None
    ) -> list[RecurringTransaction]:
        """Active rules that are due at ``now`` (default: the service clock)."""
        return self.store.recurrings.find_due(
            now if now is not None else self.clock(), user_id=user_id
        )
