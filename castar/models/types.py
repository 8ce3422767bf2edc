"""
Enumerations shared by the storage layer and the services.

Values match the CHECK constraints of the SQLite schema, so a member's
``value`` is exactly what ends up in the column.
"""

from enum import Enum


class TransactionType(str, Enum):
    """Direction of a ledger entry."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"

    def signed(self, amount: float) -> float:
        """
        Signed effect of ``amount`` on an account balance.

        Income adds to the account; expenses and transfers leave it.
        """
        return amount if self is TransactionType.INCOME else -amount


class AccountType(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK = "bank"
    SAVINGS = "savings"


class BudgetPeriod(str, Enum):
    """Budget period, also used as the recurring-rule frequency."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AnalyticsPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    CUSTOM = "custom"


class SyncAction(str, Enum):
    """Kind of mutation recorded in the sync outbox."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncTable(str, Enum):
    """Tables whose mutations are replicated through the outbox."""

    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"
    RECURRINGS = "recurrings"


class LifecycleState(str, Enum):
    """
    Soft-delete state of an entity.

    Accounts are archived, budgets deactivated and recurring rules paused;
    all three map onto the same two states.
    """

    ACTIVE = "active"
    ARCHIVED = "archived"


class BudgetStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    EXCEEDED = "exceeded"
