"""
Data transfer objects accepted by the ledger service.

Each DTO validates itself before anything is written. Update DTOs are partial:
a field left as ``None`` is not changed.
"""

import math
import re
from dataclasses import dataclass, fields
from typing import Any, Optional

from castar.config import (
    MAX_ACCOUNT_NAME_LENGTH,
    MAX_BUDGET_NAME_LENGTH,
    MAX_CATEGORY_NAME_LENGTH,
    MAX_DESCRIPTION_LENGTH,
)
from castar.errors import ValidationError

from .types import AccountType, BudgetPeriod, TransactionType

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _require_text(value: Optional[str], field: str, max_length: int) -> None:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", field)
    if len(value) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters", field
        )


def _require_positive(value: Optional[float], field: str) -> None:
    if value is None or not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{field} must be greater than 0, got {value}", field)


def _require_id(value: Optional[str], field: str) -> None:
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} is required", field)


def _check_description(value: Optional[str]) -> None:
    if value is not None and len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            "description",
        )


class _PartialUpdate:
    """Mixin for update DTOs: collects the fields that were actually set."""

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not None
        }


@dataclass
class CreateAccountDTO:
    name: str
    type: AccountType
    currency: str
    icon: Optional[str] = None
    color: Optional[str] = None

    def validate(self) -> None:
        _require_text(self.name, "name", MAX_ACCOUNT_NAME_LENGTH)
        if not isinstance(self.type, AccountType):
            raise ValidationError(f"Invalid account type: {self.type}", "type")
        _require_text(self.currency, "currency", 3)


@dataclass
class UpdateAccountDTO(_PartialUpdate):
    name: Optional[str] = None
    type: Optional[AccountType] = None
    currency: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "name", MAX_ACCOUNT_NAME_LENGTH)
        if self.type is not None and not isinstance(self.type, AccountType):
            raise ValidationError(f"Invalid account type: {self.type}", "type")
        if self.currency is not None:
            _require_text(self.currency, "currency", 3)


@dataclass
class CreateCategoryDTO:
    name: str
    icon: str
    color: str
    type: TransactionType
    parent_id: Optional[str] = None

    def validate(self) -> None:
        _require_text(self.name, "name", MAX_CATEGORY_NAME_LENGTH)
        if not self.icon:
            raise ValidationError("icon is required", "icon")
        if not _COLOR_RE.match(self.color or ""):
            raise ValidationError(f"Invalid color: {self.color}", "color")
        if not isinstance(self.type, TransactionType):
            raise ValidationError(f"Invalid category type: {self.type}", "type")


@dataclass
class UpdateCategoryDTO(_PartialUpdate):
    name: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    type: Optional[TransactionType] = None
    parent_id: Optional[str] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "name", MAX_CATEGORY_NAME_LENGTH)
        if self.icon is not None and not self.icon:
            raise ValidationError("icon is required", "icon")
        if self.color is not None and not _COLOR_RE.match(self.color):
            raise ValidationError(f"Invalid color: {self.color}", "color")
        if self.type is not None and not isinstance(self.type, TransactionType):
            raise ValidationError(f"Invalid category type: {self.type}", "type")


@dataclass
class CreateTransactionDTO:
    """Input for a new ledger entry. ``amount`` is always positive."""

    account_id: str
    category_id: str
    type: TransactionType
    amount: float
    currency: str
    date: int
    description: Optional[str] = None
    family_group_id: Optional[str] = None
    voice_input: bool = False
    amount_in_default: Optional[float] = None
    exchange_rate: Optional[float] = None

    def validate(self) -> None:
        _require_id(self.account_id, "account_id")
        _require_id(self.category_id, "category_id")
        if not isinstance(self.type, TransactionType):
            raise ValidationError(f"Invalid transaction type: {self.type}", "type")
        _require_positive(self.amount, "amount")
        _require_text(self.currency, "currency", 3)
        _require_positive(self.date, "date")
        _check_description(self.description)


@dataclass
class UpdateTransactionDTO(_PartialUpdate):
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    type: Optional[TransactionType] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    date: Optional[int] = None
    description: Optional[str] = None
    family_group_id: Optional[str] = None
    amount_in_default: Optional[float] = None
    exchange_rate: Optional[float] = None

    def validate(self) -> None:
        if self.account_id is not None:
            _require_id(self.account_id, "account_id")
        if self.category_id is not None:
            _require_id(self.category_id, "category_id")
        if self.type is not None and not isinstance(self.type, TransactionType):
            raise ValidationError(f"Invalid transaction type: {self.type}", "type")
        if self.amount is not None:
            _require_positive(self.amount, "amount")
        if self.currency is not None:
            _require_text(self.currency, "currency", 3)
        if self.date is not None:
            _require_positive(self.date, "date")
        _check_description(self.description)

    def touches_ledger(self) -> bool:
        """Whether this update can change an account balance."""
        return (
            self.amount is not None
            or self.type is not None
            or self.account_id is not None
        )


@dataclass
class CreateBudgetDTO:
    name: str
    amount: float
    currency: str
    period: BudgetPeriod
    start_date: int
    category_id: Optional[str] = None
    end_date: Optional[int] = None
    family_group_id: Optional[str] = None

    def validate(self) -> None:
        _require_text(self.name, "name", MAX_BUDGET_NAME_LENGTH)
        _require_positive(self.amount, "amount")
        _require_text(self.currency, "currency", 3)
        if not isinstance(self.period, BudgetPeriod):
            raise ValidationError(f"Invalid budget period: {self.period}", "period")
        _require_positive(self.start_date, "start_date")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValidationError("end_date must not precede start_date", "end_date")


@dataclass
class UpdateBudgetDTO(_PartialUpdate):
    name: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    period: Optional[BudgetPeriod] = None
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    category_id: Optional[str] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "name", MAX_BUDGET_NAME_LENGTH)
        if self.amount is not None:
            _require_positive(self.amount, "amount")
        if self.currency is not None:
            _require_text(self.currency, "currency", 3)
        if self.period is not None and not isinstance(self.period, BudgetPeriod):
            raise ValidationError(f"Invalid budget period: {self.period}", "period")
        if self.start_date is not None:
            _require_positive(self.start_date, "start_date")
        if self.end_date is not None:
            _require_positive(self.end_date, "end_date")


@dataclass
class CreateRecurringDTO:
    account_id: str
    category_id: str
    type: TransactionType
    amount: float
    currency: str
    frequency: BudgetPeriod
    next_date: int
    description: Optional[str] = None

    def validate(self) -> None:
        _require_id(self.account_id, "account_id")
        _require_id(self.category_id, "category_id")
        if not isinstance(self.type, TransactionType):
            raise ValidationError(f"Invalid transaction type: {self.type}", "type")
        _require_positive(self.amount, "amount")
        _require_text(self.currency, "currency", 3)
        if not isinstance(self.frequency, BudgetPeriod):
            raise ValidationError(f"Invalid frequency: {self.frequency}", "frequency")
        _require_positive(self.next_date, "next_date")
        _check_description(self.description)


@dataclass
class TransactionFilters:
    """Optional filters for transaction list queries. Date bounds are inclusive."""

    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    family_group_id: Optional[str] = None
    date_from: Optional[int] = None
    date_to: Optional[int] = None
    amount_min: Optional[float] = None
    amount_max: Optional[float] = None
    search: Optional[str] = None
