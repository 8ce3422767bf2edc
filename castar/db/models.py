"""
Database models for the CaStar local store.

Each entity maps explicitly between its SQLite row (snake_case columns,
booleans as 0/1, enums as text) and the in-memory dataclass. ``to_dict`` is
the JSON-safe shape used for outbox payloads.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Optional

from castar.config import MAX_SYNC_RETRIES
from castar.errors import ValidationError
from castar.models.types import (
    AccountType,
    BudgetPeriod,
    LifecycleState,
    SyncAction,
    TransactionType,
)


def _db_value(value: Any) -> Any:
    """Convert a Python value to what SQLite stores."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, Enum):
        return value.value
    return value


def _columns_for(
    entity: str, columns: dict[str, str], changes: dict[str, Any]
) -> dict[str, Any]:
    """Translate a partial entity update into column values."""
    row = {}
    for name, value in changes.items():
        if name == "id" or name not in columns:
            raise ValidationError(f"{entity} has no updatable field '{name}'", name)
        row[columns[name]] = _db_value(value)
    return row


def _state(active: bool) -> LifecycleState:
    return LifecycleState.ACTIVE if active else LifecycleState.ARCHIVED


@dataclass
class Account:
    """
    A balance holder (cash, card, bank or savings).

    ``balance`` is maintained incrementally by the ledger service and must
    equal the signed sum of the account's transactions.
    """

    COLUMNS: ClassVar[dict[str, str]] = {
        "remote_id": "remote_id",
        "user_id": "user_id",
        "name": "name",
        "type": "type",
        "currency": "currency",
        "balance": "balance",
        "icon": "icon",
        "color": "color",
        "is_archived": "is_archived",
        "created_at": "created_at",
        "updated_at": "updated_at",
        "synced_at": "synced_at",
    }

    id: str
    user_id: str
    name: str
    type: AccountType
    currency: str
    created_at: int
    updated_at: int
    balance: float = 0.0
    icon: Optional[str] = None
    color: Optional[str] = None
    is_archived: bool = False
    remote_id: Optional[str] = None
    synced_at: Optional[int] = None

    @property
    def state(self) -> LifecycleState:
        return _state(not self.is_archived)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "name": self.name,
            "type": self.type.value,
            "currency": self.currency,
            "balance": self.balance,
            "icon": self.icon,
            "color": self.color,
            "is_archived": 1 if self.is_archived else 0,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "name": self.name,
            "type": self.type.value,
            "currency": self.currency,
            "balance": self.balance,
            "icon": self.icon,
            "color": self.color,
            "is_archived": self.is_archived,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    @classmethod
    def columns_for(cls, changes: dict[str, Any]) -> dict[str, Any]:
        return _columns_for("Account", cls.COLUMNS, changes)

    @classmethod
    def from_row(cls, row) -> "Account":
        """Create an Account from a database row."""
        return cls(
            id=row["id"],
            remote_id=row["remote_id"],
            user_id=row["user_id"],
            name=row["name"],
            type=AccountType(row["type"]),
            currency=row["currency"],
            balance=row["balance"],
            icon=row["icon"],
            color=row["color"],
            is_archived=bool(row["is_archived"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            synced_at=row["synced_at"],
        )


@dataclass
class Category:
    """A named classification of transactions. Seeded ones have ``is_default``."""

    COLUMNS: ClassVar[dict[str, str]] = {
        "remote_id": "remote_id",
        "user_id": "user_id",
        "name": "name",
        "icon": "icon",
        "color": "color",
        "type": "type",
        "is_default": "is_default",
        "parent_id": "parent_id",
        "sort_order": "sort_order",
        "created_at": "created_at",
        "updated_at": "updated_at",
        "synced_at": "synced_at",
    }

    id: str
    user_id: str
    name: str
    icon: str
    color: str
    type: TransactionType
    created_at: int
    updated_at: int
    is_default: bool = False
    parent_id: Optional[str] = None
    sort_order: int = 0
    remote_id: Optional[str] = None
    synced_at: Optional[int] = None

    @property
    def state(self) -> LifecycleState:
        return LifecycleState.ACTIVE

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "type": self.type.value,
            "is_default": 1 if self.is_default else 0,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "type": self.type.value,
            "is_default": self.is_default,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    @classmethod
    def columns_for(cls, changes: dict[str, Any]) -> dict[str, Any]:
        return _columns_for("Category", cls.COLUMNS, changes)

    @classmethod
    def from_row(cls, row) -> "Category":
        """Create a Category from a database row."""
        return cls(
            id=row["id"],
            remote_id=row["remote_id"],
            user_id=row["user_id"],
            name=row["name"],
            icon=row["icon"],
            color=row["color"],
            type=TransactionType(row["type"]),
            is_default=bool(row["is_default"]),
            parent_id=row["parent_id"],
            sort_order=row["sort_order"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            synced_at=row["synced_at"],
        )


@dataclass
class Transaction:
    """
    A single income, expense or transfer event.

    ``amount`` is always positive; the sign comes from ``type``. ``date`` is
    the user-assigned moment of the event and may differ from ``created_at``.
    """

    COLUMNS: ClassVar[dict[str, str]] = {
        "remote_id": "remote_id",
        "user_id": "user_id",
        "account_id": "account_id",
        "category_id": "category_id",
        "family_group_id": "family_group_id",
        "type": "type",
        "amount": "amount",
        "currency": "currency",
        "amount_in_default": "amount_in_default",
        "exchange_rate": "exchange_rate",
        "description": "description",
        "date": "date",
        "is_recurring": "is_recurring",
        "recurring_id": "recurring_id",
        "voice_input": "voice_input",
        "created_at": "created_at",
        "updated_at": "updated_at",
        "synced_at": "synced_at",
    }

    id: str
    user_id: str
    account_id: str
    category_id: str
    type: TransactionType
    amount: float
    currency: str
    date: int
    created_at: int
    updated_at: int
    family_group_id: Optional[str] = None
    amount_in_default: Optional[float] = None
    exchange_rate: Optional[float] = None
    description: Optional[str] = None
    is_recurring: bool = False
    recurring_id: Optional[str] = None
    voice_input: bool = False
    remote_id: Optional[str] = None
    synced_at: Optional[int] = None

    @property
    def signed_amount(self) -> float:
        """Effect of this transaction on its account balance."""
        return self.type.signed(self.amount)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "category_id": self.category_id,
            "family_group_id": self.family_group_id,
            "type": self.type.value,
            "amount": self.amount,
            "currency": self.currency,
            "amount_in_default": self.amount_in_default,
            "exchange_rate": self.exchange_rate,
            "description": self.description,
            "date": self.date,
            "is_recurring": 1 if self.is_recurring else 0,
            "recurring_id": self.recurring_id,
            "voice_input": 1 if self.voice_input else 0,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "category_id": self.category_id,
            "family_group_id": self.family_group_id,
            "type": self.type.value,
            "amount": self.amount,
            "currency": self.currency,
            "amount_in_default": self.amount_in_default,
            "exchange_rate": self.exchange_rate,
            "description": self.description,
            "date": self.date,
            "is_recurring": self.is_recurring,
            "recurring_id": self.recurring_id,
            "voice_input": self.voice_input,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    @classmethod
    def columns_for(cls, changes: dict[str, Any]) -> dict[str, Any]:
        return _columns_for("Transaction", cls.COLUMNS, changes)

    @classmethod
    def from_row(cls, row) -> "Transaction":
        """Create a Transaction from a database row."""
        return cls(
            id=row["id"],
            remote_id=row["remote_id"],
            user_id=row["user_id"],
            account_id=row["account_id"],
            category_id=row["category_id"],
            family_group_id=row["family_group_id"],
            type=TransactionType(row["type"]),
            amount=row["amount"],
            currency=row["currency"],
            amount_in_default=row["amount_in_default"],
            exchange_rate=row["exchange_rate"],
            description=row["description"],
            date=row["date"],
            is_recurring=bool(row["is_recurring"]),
            recurring_id=row["recurring_id"],
            voice_input=bool(row["voice_input"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            synced_at=row["synced_at"],
        )


@dataclass
class Budget:
    """
    A spending limit over a period, optionally scoped to one category.

    Spent, remaining and percentage are never stored; see
    ``castar.services.aggregation.EnrichedBudget``.
    """

    COLUMNS: ClassVar[dict[str, str]] = {
        "remote_id": "remote_id",
        "user_id": "user_id",
        "family_group_id": "family_group_id",
        "category_id": "category_id",
        "name": "name",
        "amount": "amount",
        "currency": "currency",
        "period": "period",
        "start_date": "start_date",
        "end_date": "end_date",
        "is_active": "is_active",
        "created_at": "created_at",
        "updated_at": "updated_at",
        "synced_at": "synced_at",
    }

    id: str
    user_id: str
    name: str
    amount: float
    currency: str
    period: BudgetPeriod
    start_date: int
    created_at: int
    updated_at: int
    category_id: Optional[str] = None
    end_date: Optional[int] = None
    family_group_id: Optional[str] = None
    is_active: bool = True
    remote_id: Optional[str] = None
    synced_at: Optional[int] = None

    @property
    def state(self) -> LifecycleState:
        return _state(self.is_active)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "family_group_id": self.family_group_id,
            "category_id": self.category_id,
            "name": self.name,
            "amount": self.amount,
            "currency": self.currency,
            "period": self.period.value,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "is_active": 1 if self.is_active else 0,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "remote_id": self.remote_id,
            "user_id": self.user_id,
            "family_group_id": self.family_group_id,
            "category_id": self.category_id,
            "name": self.name,
            "amount": self.amount,
            "currency": self.currency,
            "period": self.period.value,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    @classmethod
    def columns_for(cls, changes: dict[str, Any]) -> dict[str, Any]:
        return _columns_for("Budget", cls.COLUMNS, changes)

    @classmethod
    def from_row(cls, row) -> "Budget":
        """Create a Budget from a database row."""
        return cls(
            id=row["id"],
            remote_id=row["remote_id"],
            user_id=row["user_id"],
            family_group_id=row["family_group_id"],
            category_id=row["category_id"],
            name=row["name"],
            amount=row["amount"],
            currency=row["currency"],
            period=BudgetPeriod(row["period"]),
            start_date=row["start_date"],
            end_date=row["end_date"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            synced_at=row["synced_at"],
        )


@dataclass
class RecurringTransaction:
    """Template for future transactions; ``next_date`` is the next due occurrence."""

    COLUMNS: ClassVar[dict[str, str]] = {
        "user_id": "user_id",
        "account_id": "account_id",
        "category_id": "category_id",
        "type": "type",
        "amount": "amount",
        "currency": "currency",
        "description": "description",
        "frequency": "frequency",
        "next_date": "next_date",
        "is_active": "is_active",
        "created_at": "created_at",
        "updated_at": "updated_at",
    }

    id: str
    user_id: str
    account_id: str
    category_id: str
    type: TransactionType
    amount: float
    currency: str
    frequency: BudgetPeriod
    next_date: int
    created_at: int
    updated_at: int
    description: Optional[str] = None
    is_active: bool = True

    @property
    def state(self) -> LifecycleState:
        return _state(self.is_active)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "category_id": self.category_id,
            "type": self.type.value,
            "amount": self.amount,
            "currency": self.currency,
            "description": self.description,
            "frequency": self.frequency.value,
            "next_date": self.next_date,
            "is_active": 1 if self.is_active else 0,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "category_id": self.category_id,
            "type": self.type.value,
            "amount": self.amount,
            "currency": self.currency,
            "description": self.description,
            "frequency": self.frequency.value,
            "next_date": self.next_date,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def columns_for(cls, changes: dict[str, Any]) -> dict[str, Any]:
        return _columns_for("RecurringTransaction", cls.COLUMNS, changes)

    @classmethod
    def from_row(cls, row) -> "RecurringTransaction":
        """Create a RecurringTransaction from a database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            account_id=row["account_id"],
            category_id=row["category_id"],
            type=TransactionType(row["type"]),
            amount=row["amount"],
            currency=row["currency"],
            description=row["description"],
            frequency=BudgetPeriod(row["frequency"]),
            next_date=row["next_date"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class SyncQueueItem:
    """
    One pending mutation in the outbox.

    ``data`` is the JSON payload captured at enqueue time; later changes to the
    entity never alter it. ``seq`` is the monotonic enqueue order.
    """

    COLUMNS: ClassVar[dict[str, str]] = {
        "table_name": "table_name",
        "record_id": "record_id",
        "action": "action",
        "data": "data",
        "created_at": "created_at",
        "attempts": "attempts",
        "last_error": "last_error",
    }

    id: str
    table_name: str
    record_id: str
    action: SyncAction
    data: str
    created_at: int
    attempts: int = 0
    last_error: Optional[str] = None
    seq: Optional[int] = None

    @property
    def payload(self) -> Any:
        return json.loads(self.data)

    def is_dead(self, max_retries: int = MAX_SYNC_RETRIES) -> bool:
        """Whether the retry budget is exhausted."""
        return self.attempts >= max_retries

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action.value,
            "data": self.data,
            "created_at": self.created_at,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action.value,
            "data": self.data,
            "created_at": self.created_at,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "seq": self.seq,
        }

    @classmethod
    def columns_for(cls, changes: dict[str, Any]) -> dict[str, Any]:
        return _columns_for("SyncQueueItem", cls.COLUMNS, changes)

    @classmethod
    def from_row(cls, row) -> "SyncQueueItem":
        """Create a SyncQueueItem from a database row."""
        return cls(
            id=row["id"],
            table_name=row["table_name"],
            record_id=row["record_id"],
            action=SyncAction(row["action"]),
            data=row["data"],
            created_at=row["created_at"],
            attempts=row["attempts"],
            last_error=row["last_error"],
            seq=row["seq"],
        )


@dataclass
class ExchangeRate:
    """Cached conversion rate from ``base_currency`` to ``target_currency``."""

    COLUMNS: ClassVar[dict[str, str]] = {
        "base_currency": "base_currency",
        "target_currency": "target_currency",
        "rate": "rate",
        "fetched_at": "fetched_at",
    }

    id: str
    base_currency: str
    target_currency: str
    rate: float
    fetched_at: int

    @staticmethod
    def make_id(base_currency: str, target_currency: str) -> str:
        return f"{base_currency}_{target_currency}"

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "base_currency": self.base_currency,
            "target_currency": self.target_currency,
            "rate": self.rate,
            "fetched_at": self.fetched_at,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return self.to_row()

    @classmethod
    def columns_for(cls, changes: dict[str, Any]) -> dict[str, Any]:
        return _columns_for("ExchangeRate", cls.COLUMNS, changes)

    @classmethod
    def from_row(cls, row) -> "ExchangeRate":
        """Create an ExchangeRate from a database row."""
        return cls(
            id=row["id"],
            base_currency=row["base_currency"],
            target_currency=row["target_currency"],
            rate=row["rate"],
            fetched_at=row["fetched_at"],
        )
