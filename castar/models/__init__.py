from .dto import (
    CreateAccountDTO,
    CreateBudgetDTO,
    CreateCategoryDTO,
    CreateRecurringDTO,
    CreateTransactionDTO,
    TransactionFilters,
    UpdateAccountDTO,
    UpdateBudgetDTO,
    UpdateCategoryDTO,
    UpdateTransactionDTO,
)
from .types import (
    AccountType,
    AnalyticsPeriod,
    BudgetPeriod,
    BudgetStatus,
    LifecycleState,
    SyncAction,
    SyncTable,
    TransactionType,
)

__all__ = [
    "AccountType",
    "AnalyticsPeriod",
    "BudgetPeriod",
    "BudgetStatus",
    "LifecycleState",
    "SyncAction",
    "SyncTable",
    "TransactionType",
    "CreateAccountDTO",
    "CreateBudgetDTO",
    "CreateCategoryDTO",
    "CreateRecurringDTO",
    "CreateTransactionDTO",
    "TransactionFilters",
    "UpdateAccountDTO",
    "UpdateBudgetDTO",
    "UpdateCategoryDTO",
    "UpdateTransactionDTO",
]
